"""
Platform-wide exception hierarchy.

Services raise these types; the app registers one error handler per type
and gets consistent HTTP status codes everywhere. Batch callers (workflow
transitions, scheduled jobs) catch the recoverable ones per item and report
them instead of failing the whole batch.

Usage:
    from app.core.exceptions import NotFoundError, RuleConfigurationError

    raise NotFoundError(resource="Matter", resource_id=42)
    raise RuleConfigurationError("Unknown trigger event 'XYZ'", rule_id=7)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Matter", "Task").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique key.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


# ── Docket domain errors ─────────────────────────────────────────────────────


class DocketError(Exception):
    """Base of the rule-engine / renewal errors.

    Carries the ids needed to diagnose the failure without re-running it.
    """

    def __init__(
        self,
        message: str,
        *,
        matter_id: int | None = None,
        event_id: int | None = None,
        rule_id: int | None = None,
        task_id: int | None = None,
    ) -> None:
        self.matter_id = matter_id
        self.event_id = event_id
        self.rule_id = rule_id
        self.task_id = task_id
        self.message = message
        super().__init__(message)

    @property
    def context(self) -> dict:
        return {
            key: value
            for key, value in (
                ("matter_id", self.matter_id),
                ("event_id", self.event_id),
                ("rule_id", self.rule_id),
                ("task_id", self.task_id),
            )
            if value is not None
        }

    def __str__(self) -> str:
        base = super().__str__()
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{base} ({ctx})" if ctx else base


class RuleConfigurationError(DocketError):
    """A task rule is misconfigured (unknown event code, bad offsets, mode clash)."""


class RenewalParametersError(DocketError):
    """Country renewal parameters or the dates they point to are unusable."""


class FeeDataError(DocketError):
    """Fee data needed to price a renewal is missing."""

    def __init__(self, message: str, *, field: str | None = None, **ctx) -> None:
        self.field = field
        super().__init__(message, **ctx)


class TransitionError(DocketError):
    """A renewal workflow transition is not allowed from the task's current state."""

    def __init__(self, task_id: int, action: str, current_step: int | None, reason: str) -> None:
        self.action = action
        self.current_step = current_step
        self.reason = reason
        super().__init__(
            f"Cannot '{action}' task {task_id} (step={current_step}): {reason}",
            task_id=task_id,
        )


class StaleTaskError(DocketError):
    """A task was modified concurrently; the update was not applied."""
