"""
Acting context threaded through every core call.

Creator/updater stamps, RenewalsLog attribution and "today" come from here,
never from ambient request state, so services behave the same in a request,
a queued job or a test.

Usage:
    from app.core.context import ActingContext

    ctx = ActingContext(user="jdoe")
    ctx = ActingContext.system(job_id=42)
    ctx = ActingContext(user="tester", today=date(2024, 1, 15))
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date

SYSTEM_USER = "system"


@dataclass(frozen=True)
class ActingContext:
    user: str
    job_id: int | None = None
    today: date | None = None

    @classmethod
    def system(cls, job_id: int | None = None, today: date | None = None) -> ActingContext:
        return cls(user=SYSTEM_USER, job_id=job_id, today=today)

    def as_of(self) -> date:
        """The reference date for look-back windows and default done dates."""
        return self.today or date.today()

    def with_job(self, job_id: int) -> ActingContext:
        return replace(self, job_id=job_id)
