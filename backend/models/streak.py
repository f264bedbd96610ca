from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

StreakPolicy = Literal["strict", "grace"]
RunStatus = Literal["idle", "fetching_users", "processing_users", "completed", "completed_with_errors"]
FailureStage = Literal["fetch", "compute", "persist"]

EXIT_OK = 0
EXIT_USER_FAILURES = 1
EXIT_CONFIG_ERROR = 2
EXIT_ENUMERATION_FAILED = 3


class CheckInEvent(BaseModel):
    """One logged check-in, as read from the event store. Never written by the streak job."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def _anchor_utc(cls, value: datetime) -> datetime:
        # Stores without timezone support hand back naive UTC values
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@dataclass(frozen=True)
class StreakState:
    """
    Per-user derived streak record. Day-level, recomputed from scratch on every run.
    """

    streak_count: int = 0
    last_confirmed_date: Optional[date] = None

    def __post_init__(self):
        if self.streak_count < 0:
            raise ValueError("streak_count must be non-negative")

    def to_dict(self) -> dict:
        return {
            "streak_count": self.streak_count,
            "last_confirmed_date": self.last_confirmed_date.isoformat() if self.last_confirmed_date else None,
        }


@dataclass(frozen=True)
class UserFailure:
    user_id: str
    stage: FailureStage
    error_code: str
    message: str


@dataclass
class RunSummary:
    run_id: str
    today: date
    policy: StreakPolicy
    dry_run: bool = False
    status: RunStatus = "idle"
    total_users: int = 0
    succeeded: int = 0
    failures: List[UserFailure] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def failed_user_ids(self) -> List[str]:
        return [failure.user_id for failure in self.failures]

    @property
    def exit_code(self) -> int:
        return EXIT_USER_FAILURES if self.failures else EXIT_OK

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "today": self.today.isoformat(),
            "policy": self.policy,
            "dry_run": self.dry_run,
            "status": self.status,
            "total_users": self.total_users,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_user_ids": self.failed_user_ids,
            "failures": [
                {
                    "user_id": f.user_id,
                    "stage": f.stage,
                    "error_code": f.error_code,
                    "message": f.message,
                }
                for f in self.failures
            ],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
