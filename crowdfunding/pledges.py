"""Pledge acceptance.

``PledgeEngine.process_pledge`` validates a pledge against freshly loaded
project and reward-tier state and then writes three collections: the new
pledge, the project's running total and the tier's remaining quantity.

Invariants:
    - project.current_amount == sum of its SUCCESS pledge amounts
    - 0 <= tier.remaining_quantity <= tier.total_quantity, and
      total - remaining == number of SUCCESS pledges selecting the tier
    - pledge ids are never handed out twice

The whole load-validate-write sequence runs under one lock. If a later write
fails, the files already written in the same call are restored from the
state read under that lock.
"""
import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from crowdfunding.errors import StorageError
from crowdfunding.models import Pledge, PledgeStatus
from crowdfunding.stats import pledge_statistics

logger = logging.getLogger(__name__)

MSG_NOT_LOGGED_IN = "User not logged in"
MSG_PROJECT_NOT_FOUND = "Project not found"
MSG_DEADLINE_PASSED = "Project deadline has passed"
MSG_INVALID_AMOUNT = "Pledge amount must be greater than 0"
MSG_TIER_NOT_FOUND = "Selected reward tier not found"
MSG_SUCCESS = "Pledge successful! Thank you for your support."


def format_pledge_id(sequence):
    return "P%06d" % sequence


@dataclass
class PledgeResult:
    accepted: bool
    message: str
    pledge: Optional[Pledge] = None
    error: bool = False     # storage failure rather than a business rejection

    def to_dict(self):
        return {
            "accepted": self.accepted,
            "error": self.error,
            "message": self.message,
            "pledge": self.pledge.to_dict() if self.pledge else None,
        }


class PledgeEngine:
    def __init__(self, projects, reward_tiers, pledges, clock=datetime.now):
        self.projects = projects
        self.reward_tiers = reward_tiers
        self.pledges = pledges
        self.clock = clock
        self._lock = threading.Lock()
        self._next_sequence = None

    # ---------------- Validation ----------------
    def _check(self, project, amount, tier, tier_requested, today):
        """Return the rejection reason, or None when the pledge may go through."""
        if not project.is_active(today):
            return MSG_DEADLINE_PASSED
        if not math.isfinite(amount) or amount <= 0:
            return MSG_INVALID_AMOUNT
        if tier_requested:
            if tier is None:
                return MSG_TIER_NOT_FOUND
            if amount < tier.minimum_amount:
                return "Minimum amount for '%s' is $%.2f" % (tier.name, tier.minimum_amount)
            if not tier.can_pledge(amount):
                return "Reward tier '%s' is no longer available" % tier.name
        return None

    def _allocate_id(self):
        # never below the highest id on disk, never reuse one handed out
        floor = self.pledges.max_sequence() + 1
        sequence = max(self._next_sequence or 1, floor)
        self._next_sequence = sequence + 1
        return format_pledge_id(sequence)

    # ---------------- Transaction ----------------
    def process_pledge(self, project_id, user, amount, reward_tier_id=None) -> PledgeResult:
        if user is None:
            return PledgeResult(False, MSG_NOT_LOGGED_IN)

        with self._lock:
            try:
                return self._process(project_id, user, float(amount), reward_tier_id or None)
            except StorageError as e:
                logger.error("Pledge by %s to %s failed: %s", user.user_id, project_id, e)
                return PledgeResult(False, f"Error processing pledge: {e.cause}", error=True)

    def _process(self, project_id, user, amount, reward_tier_id):
        project = self.projects.find_by_id(project_id)
        if project is None:
            return PledgeResult(False, MSG_PROJECT_NOT_FOUND)

        tier = None
        if reward_tier_id:
            tier = self.reward_tiers.find_by_id(reward_tier_id)
            if tier is not None and tier.project_id != project.project_id:
                tier = None

        now = self.clock().replace(microsecond=0)
        reason = self._check(project, amount, tier, bool(reward_tier_id), now.date())

        pledge = Pledge(
            pledge_id=self._allocate_id(),
            user_id=user.user_id,
            project_id=project.project_id,
            pledge_time=now,
            amount=amount,
            reward_tier_id=tier.tier_id if tier else None,
            status=PledgeStatus.REJECTED if reason else PledgeStatus.SUCCESS,
            rejection_reason=reason,
        )

        if reason:
            self.pledges.add(pledge)
            logger.info("Rejected pledge %s (%s to %s): %s",
                        pledge.pledge_id, user.user_id, project.project_id, reason)
            return PledgeResult(False, reason, pledge)

        self._apply(pledge, project, tier)
        logger.info("Accepted pledge %s: %s pledged %.2f to %s%s",
                    pledge.pledge_id, user.user_id, amount, project.project_id,
                    f" (tier {tier.tier_id})" if tier else "")
        return PledgeResult(True, MSG_SUCCESS, pledge)

    def _apply(self, pledge, project, tier):
        undo = []
        try:
            before = self.pledges.snapshot()
            self.pledges.add(pledge)
            undo.append(lambda: self.pledges.restore(before))

            self.projects.update(replace(project, current_amount=project.current_amount + pledge.amount))
            undo.append(lambda: self.projects.update(project))

            if tier is not None:
                updated = replace(tier)
                updated.reduce_quantity()
                self.reward_tiers.update(updated)
        except StorageError:
            self._rollback(pledge, undo)
            raise

    def _rollback(self, pledge, undo):
        for step in reversed(undo):
            try:
                step()
            except StorageError as e:
                logger.critical("Rollback of pledge %s incomplete: %s", pledge.pledge_id, e)
                return
        if undo:
            logger.warning("Rolled back pledge %s after a failed write", pledge.pledge_id)

    # ---------------- Reads ----------------
    def user_pledges(self, user_id):
        return self.pledges.find_by_user(user_id)

    def project_pledges(self, project_id):
        return self.pledges.find_by_project(project_id)

    def pledge_statistics(self):
        return pledge_statistics(self.pledges.load_all())
