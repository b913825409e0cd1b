import math
import random
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from crowdfunding.errors import MalformedRecordError

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

PROJECT_ID_RE = re.compile(r"[1-9][0-9]{7}")


# Project id: 8 digits, first digit is never 0
def gen_project_id(rng=random):
    first = str(rng.randint(1, 9))
    rest = "".join(str(rng.randint(0, 9)) for _ in range(7))
    return first + rest


def is_valid_project_id(project_id) -> bool:
    return bool(project_id) and PROJECT_ID_RE.fullmatch(project_id) is not None


class PledgeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    REJECTED = "REJECTED"


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# ---------------- Row helpers ----------------
def _check_width(row, width, kind):
    if len(row) < width:
        raise MalformedRecordError(f"{kind} row has {len(row)} fields, expected {width}")


def _parse(kind, column, value, parser):
    try:
        return parser(value)
    except ValueError as e:
        raise MalformedRecordError(f"{kind}.{column}: cannot parse {value!r} ({e})") from e


def _parse_date(value):
    return datetime.strptime(value, DATE_FORMAT).date()


def _parse_datetime(value):
    return datetime.strptime(value, DATETIME_FORMAT)


# ---------------- Models ----------------
@dataclass
class User:
    HEADERS = ("userId", "username", "email", "password")

    user_id: str
    username: str
    email: str = ""
    password: str = ""

    @property
    def key(self):
        return self.user_id

    def check_password(self, password) -> bool:
        # plaintext, compared exactly as stored
        return self.password == password

    def to_row(self):
        return [self.user_id, self.username, self.email, self.password]

    @classmethod
    def from_row(cls, row):
        _check_width(row, len(cls.HEADERS), "User")
        return cls(row[0], row[1], row[2], row[3])

    def to_dict(self):
        return {"user_id": self.user_id, "username": self.username, "email": self.email}


@dataclass
class Category:
    HEADERS = ("categoryId", "name", "description")

    category_id: str
    name: str
    description: str = ""

    @property
    def key(self):
        return self.category_id

    def to_row(self):
        return [self.category_id, self.name, self.description]

    @classmethod
    def from_row(cls, row):
        _check_width(row, len(cls.HEADERS), "Category")
        return cls(row[0], row[1], row[2])

    def to_dict(self):
        return {"category_id": self.category_id, "name": self.name, "description": self.description}


@dataclass
class Project:
    HEADERS = ("projectId", "name", "goalAmount", "deadline",
               "currentAmount", "categoryId", "description", "creatorId")

    project_id: str
    name: str
    goal_amount: float          # > 0
    deadline: date              # last day pledges are accepted
    current_amount: float = 0.0
    category_id: str = ""
    description: str = ""
    creator_id: str = ""

    @property
    def key(self):
        return self.project_id

    def is_active(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        return today <= self.deadline

    @property
    def is_funding_goal_reached(self) -> bool:
        return self.current_amount >= self.goal_amount

    @property
    def funding_progress(self) -> float:
        if self.goal_amount <= 0:
            return 0.0
        return min(self.current_amount / self.goal_amount, 1) * 100

    def status(self, today: Optional[date] = None) -> ProjectStatus:
        if self.is_funding_goal_reached:
            return ProjectStatus.SUCCESS
        if self.is_active(today):
            return ProjectStatus.ACTIVE
        return ProjectStatus.FAILED

    def status_description(self, today: Optional[date] = None) -> str:
        if self.is_funding_goal_reached:
            if self.is_active(today):
                return "Goal Reached (Still Accepting Pledges)"
            return "Project Successful"
        if self.is_active(today):
            return "Active Fundraising"
        return "Project Failed"

    def days_remaining(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        if not self.is_active(today):
            return 0
        return (self.deadline - today).days

    def to_row(self):
        return [
            self.project_id,
            self.name,
            str(float(self.goal_amount)),
            self.deadline.strftime(DATE_FORMAT),
            str(float(self.current_amount)),
            self.category_id,
            self.description,
            self.creator_id,
        ]

    @classmethod
    def from_row(cls, row):
        _check_width(row, len(cls.HEADERS), "Project")
        if not is_valid_project_id(row[0]):
            raise MalformedRecordError(f"Project.projectId: invalid id {row[0]!r}")
        project = cls(
            project_id=row[0],
            name=row[1],
            goal_amount=_parse("Project", "goalAmount", row[2], float),
            deadline=_parse("Project", "deadline", row[3], _parse_date),
            current_amount=_parse("Project", "currentAmount", row[4], float),
            category_id=row[5],
            description=row[6],
            creator_id=row[7],
        )
        if not math.isfinite(project.goal_amount) or project.goal_amount <= 0:
            raise MalformedRecordError(
                f"Project {project.project_id}: goal {project.goal_amount} must be positive")
        return project

    def to_dict(self, today: Optional[date] = None):
        return {
            "project_id": self.project_id,
            "name": self.name,
            "goal_amount": self.goal_amount,
            "deadline": self.deadline.strftime(DATE_FORMAT),
            "current_amount": self.current_amount,
            "category_id": self.category_id,
            "description": self.description,
            "creator_id": self.creator_id,
            "funding_progress": self.funding_progress,
            "status": self.status(today).value,
            "status_description": self.status_description(today),
            "days_remaining": self.days_remaining(today),
        }


@dataclass
class RewardTier:
    HEADERS = ("tierId", "projectId", "name", "minimumAmount",
               "totalQuantity", "remainingQuantity", "description")

    tier_id: str
    project_id: str
    name: str
    minimum_amount: float
    total_quantity: int
    remaining_quantity: int
    description: str = ""

    @property
    def key(self):
        return self.tier_id

    @property
    def is_available(self) -> bool:
        return self.remaining_quantity > 0

    @property
    def quantity_sold(self) -> int:
        return self.total_quantity - self.remaining_quantity

    def can_pledge(self, amount) -> bool:
        return amount >= self.minimum_amount and self.is_available

    def reduce_quantity(self) -> bool:
        if self.remaining_quantity <= 0:
            return False
        self.remaining_quantity -= 1
        return True

    def to_row(self):
        return [
            self.tier_id,
            self.project_id,
            self.name,
            str(float(self.minimum_amount)),
            str(self.total_quantity),
            str(self.remaining_quantity),
            self.description,
        ]

    @classmethod
    def from_row(cls, row):
        _check_width(row, len(cls.HEADERS), "RewardTier")
        tier = cls(
            tier_id=row[0],
            project_id=row[1],
            name=row[2],
            minimum_amount=_parse("RewardTier", "minimumAmount", row[3], float),
            total_quantity=_parse("RewardTier", "totalQuantity", row[4], int),
            remaining_quantity=_parse("RewardTier", "remainingQuantity", row[5], int),
            description=row[6],
        )
        if not math.isfinite(tier.minimum_amount) or tier.minimum_amount <= 0:
            raise MalformedRecordError(
                f"RewardTier {tier.tier_id}: minimum {tier.minimum_amount} must be positive")
        if not 0 <= tier.remaining_quantity <= tier.total_quantity:
            raise MalformedRecordError(
                f"RewardTier {tier.tier_id}: remaining {tier.remaining_quantity} "
                f"outside 0..{tier.total_quantity}")
        return tier

    def to_dict(self):
        return {
            "tier_id": self.tier_id,
            "project_id": self.project_id,
            "name": self.name,
            "minimum_amount": self.minimum_amount,
            "total_quantity": self.total_quantity,
            "remaining_quantity": self.remaining_quantity,
            "description": self.description,
        }


@dataclass(frozen=True)
class Pledge:
    """Append-only record of one pledge attempt."""
    HEADERS = ("pledgeId", "userId", "projectId", "pledgeTime",
               "amount", "rewardTierId", "status", "rejectionReason")

    pledge_id: str
    user_id: str
    project_id: str
    pledge_time: datetime
    amount: float
    reward_tier_id: Optional[str] = None
    status: PledgeStatus = PledgeStatus.SUCCESS
    rejection_reason: Optional[str] = field(default=None)

    @property
    def key(self):
        return self.pledge_id

    @property
    def is_successful(self) -> bool:
        return self.status == PledgeStatus.SUCCESS

    @property
    def is_rejected(self) -> bool:
        return self.status == PledgeStatus.REJECTED

    def to_row(self):
        return [
            self.pledge_id,
            self.user_id,
            self.project_id,
            self.pledge_time.strftime(DATETIME_FORMAT),
            str(float(self.amount)),
            self.reward_tier_id or "",
            self.status.value,
            self.rejection_reason or "",
        ]

    @classmethod
    def from_row(cls, row):
        _check_width(row, len(cls.HEADERS), "Pledge")
        return cls(
            pledge_id=row[0],
            user_id=row[1],
            project_id=row[2],
            pledge_time=_parse("Pledge", "pledgeTime", row[3], _parse_datetime),
            amount=_parse("Pledge", "amount", row[4], float),
            reward_tier_id=row[5] or None,
            status=_parse("Pledge", "status", row[6], PledgeStatus),
            rejection_reason=row[7] or None,
        )

    def to_dict(self):
        return {
            "pledge_id": self.pledge_id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "pledge_time": self.pledge_time.strftime(DATETIME_FORMAT),
            "amount": self.amount,
            "reward_tier_id": self.reward_tier_id,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
        }
