"""Read-only statistics over already loaded collections.

A pledge counts as raised money only when its status is SUCCESS. Averages and
rates are 0 when their denominator is 0. Nothing here is rounded; callers
format for display.
"""
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Optional

from crowdfunding.models import Project, User


def _successful(pledges):
    return [p for p in pledges if p.is_successful]


def _percent(part, whole):
    return part / whole * 100 if whole > 0 else 0.0


@dataclass
class PledgeStatistics:
    total_pledges: int
    successful_pledges: int
    rejected_pledges: int
    total_amount_raised: float
    average_pledge_amount: float
    unique_backers: int

    def to_dict(self):
        return asdict(self)


def pledge_statistics(pledges) -> PledgeStatistics:
    ok = _successful(pledges)
    raised = sum(p.amount for p in ok)
    return PledgeStatistics(
        total_pledges=len(pledges),
        successful_pledges=len(ok),
        rejected_pledges=sum(1 for p in pledges if p.is_rejected),
        total_amount_raised=raised,
        average_pledge_amount=raised / len(ok) if ok else 0.0,
        unique_backers=len({p.user_id for p in ok}),
    )


@dataclass
class ProjectStatistics:
    project: Project
    pledges: PledgeStatistics
    tiers_sold: int
    funding_progress: float
    status: str

    def to_dict(self, today: Optional[date] = None):
        return {
            "project": self.project.to_dict(today),
            "pledges": self.pledges.to_dict(),
            "tiers_sold": self.tiers_sold,
            "funding_progress": self.funding_progress,
            "status": self.status,
        }


def project_statistics(project, pledges, tiers, today=None) -> ProjectStatistics:
    mine = [p for p in pledges if p.project_id == project.project_id]
    return ProjectStatistics(
        project=project,
        pledges=pledge_statistics(mine),
        tiers_sold=sum(t.quantity_sold for t in tiers if t.project_id == project.project_id),
        funding_progress=project.funding_progress,
        status=project.status(today).value,
    )


# ---------------- System ----------------
@dataclass
class SystemStatistics:
    total_projects: int
    total_users: int
    total_pledges: int
    successful_pledges: int
    rejected_pledges: int
    total_amount_raised: float
    average_pledge_amount: float
    unique_backers: int
    active_projects: int
    completed_projects: int
    successful_projects: int
    failed_projects: int

    @property
    def success_rate(self):
        return _percent(self.successful_pledges, self.total_pledges)

    @property
    def project_success_rate(self):
        return _percent(self.successful_projects, self.total_projects)

    def to_dict(self):
        d = asdict(self)
        d["success_rate"] = self.success_rate
        d["project_success_rate"] = self.project_success_rate
        return d


def system_statistics(pledges, projects, users, today=None) -> SystemStatistics:
    today = today or date.today()
    ps = pledge_statistics(pledges)
    active = sum(1 for p in projects if p.is_active(today))
    return SystemStatistics(
        total_projects=len(projects),
        total_users=len(users),
        total_pledges=ps.total_pledges,
        successful_pledges=ps.successful_pledges,
        rejected_pledges=ps.rejected_pledges,
        total_amount_raised=ps.total_amount_raised,
        average_pledge_amount=ps.average_pledge_amount,
        unique_backers=ps.unique_backers,
        active_projects=active,
        completed_projects=len(projects) - active,
        successful_projects=sum(1 for p in projects if p.is_funding_goal_reached),
        failed_projects=sum(1 for p in projects
                            if not p.is_active(today) and not p.is_funding_goal_reached),
    )


# ---------------- Rankings ----------------
@dataclass
class ProjectPerformance:
    project: Project
    total_pledges: int
    successful_pledges: int
    rejected_pledges: int
    total_raised: float
    unique_backers: int

    @property
    def funding_percentage(self):
        return _percent(self.total_raised, self.project.goal_amount)

    def to_dict(self):
        return {
            "project_id": self.project.project_id,
            "name": self.project.name,
            "goal_amount": self.project.goal_amount,
            "total_pledges": self.total_pledges,
            "successful_pledges": self.successful_pledges,
            "rejected_pledges": self.rejected_pledges,
            "total_raised": self.total_raised,
            "unique_backers": self.unique_backers,
            "funding_percentage": self.funding_percentage,
        }


def project_performance(projects, pledges):
    by_project = defaultdict(list)
    for p in pledges:
        by_project[p.project_id].append(p)

    rows = []
    for project in projects:
        ps = pledge_statistics(by_project[project.project_id])
        rows.append(ProjectPerformance(
            project=project,
            total_pledges=ps.total_pledges,
            successful_pledges=ps.successful_pledges,
            rejected_pledges=ps.rejected_pledges,
            total_raised=ps.total_amount_raised,
            unique_backers=ps.unique_backers,
        ))
    rows.sort(key=lambda r: r.funding_percentage, reverse=True)
    return rows


@dataclass
class UserActivity:
    user: User
    total_pledges: int
    successful_pledges: int
    rejected_pledges: int
    total_pledged: float
    projects_supported: int

    def to_dict(self):
        return {
            "user_id": self.user.user_id,
            "username": self.user.username,
            "total_pledges": self.total_pledges,
            "successful_pledges": self.successful_pledges,
            "rejected_pledges": self.rejected_pledges,
            "total_pledged": self.total_pledged,
            "projects_supported": self.projects_supported,
        }


def user_activity(users, pledges):
    by_user = defaultdict(list)
    for p in pledges:
        by_user[p.user_id].append(p)

    rows = []
    for user in users:
        mine = by_user[user.user_id]
        ok = _successful(mine)
        rows.append(UserActivity(
            user=user,
            total_pledges=len(mine),
            successful_pledges=len(ok),
            rejected_pledges=sum(1 for p in mine if p.is_rejected),
            total_pledged=sum(p.amount for p in ok),
            projects_supported=len({p.project_id for p in ok}),
        ))
    rows.sort(key=lambda r: r.total_pledged, reverse=True)
    return rows


# ---------------- Leaderboard: quotas + minimums ----------------
GOLD_MIN = 1000
SILVER_MIN = 300
BRONZE_MIN = 100

GOLD_QUOTA = 3
SILVER_QUOTA = 10


def backer_leaderboard(project_id, pledges, users):
    # successful totals per backer, largest first
    totals = defaultdict(float)
    for p in pledges:
        if p.project_id == project_id and p.is_successful:
            totals[p.user_id] += p.amount
    names = {u.user_id: u.username for u in users}
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)

    leaderboard = []
    gold_count = 0
    silver_count = 0

    for idx, (user_id, total) in enumerate(ranked, start=1):
        if total >= GOLD_MIN and gold_count < GOLD_QUOTA:
            tier = "Gold"
            gold_count += 1
        elif total >= SILVER_MIN and silver_count < SILVER_QUOTA:
            tier = "Silver"
            silver_count += 1
        elif total >= BRONZE_MIN:
            tier = "Bronze"
        else:
            tier = "None"

        leaderboard.append({
            "rank": idx,
            "user_id": user_id,
            "username": names.get(user_id, user_id),
            "total": total,
            "tier": tier,
        })

    return leaderboard


# ---------------- Reward progress (per user per project) ----------------
def user_total_for_project(user_id, project_id, pledges) -> float:
    if not user_id:
        return 0.0
    return sum(p.amount for p in pledges
               if p.user_id == user_id and p.project_id == project_id and p.is_successful)


def reward_progress(project_id, user_id, pledges, tiers):
    tiers = sorted((t for t in tiers if t.project_id == project_id),
                   key=lambda t: t.minimum_amount)
    total = user_total_for_project(user_id, project_id, pledges)

    progress = []
    next_needed = None
    for t in tiers:
        achieved = total >= t.minimum_amount
        missing = max(0.0, t.minimum_amount - total)
        progress.append({
            "tier_id": t.tier_id,
            "name": t.name,
            "minimum_amount": t.minimum_amount,
            "remaining_quantity": t.remaining_quantity,
            "achieved": achieved,
            "missing": missing,
        })
        if not achieved and next_needed is None:
            next_needed = missing

    highest = None
    for row in reversed(progress):
        if row["achieved"]:
            highest = row
            break

    return {
        "total": total,
        "tiers": progress,
        "next_missing": next_needed,
        "highest": highest,
    }
