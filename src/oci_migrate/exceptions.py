"""Exception types raised by the migration workflow."""

from typing import Any, Optional


class MigrationError(RuntimeError):
    """Base class for migration failures."""


class ProviderError(MigrationError):
    """Raised when a compute provider call fails."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status

    @classmethod
    def wrap(cls, operation: str, exc: BaseException) -> "ProviderError":
        """Build a ProviderError from an SDK or transport exception."""
        if isinstance(exc, ProviderError):
            return exc
        code = getattr(exc, "code", None)
        status = getattr(exc, "status", None)
        detail = getattr(exc, "message", None) or str(exc)
        if code:
            detail = f"{code} - {detail}"
        return cls(f"{operation}: {detail}", code=code, status=status)

    @property
    def is_transient(self) -> bool:
        return self.status == 429 or (self.status is not None and self.status >= 500)


class WaitTimeout(MigrationError):
    """Raised when an instance does not reach the expected state in time."""

    def __init__(self, instance_id: str, target_state: str, waited: float) -> None:
        super().__init__(
            f"instance {instance_id} did not reach {target_state} within {waited:.0f}s"
        )
        self.instance_id = instance_id
        self.target_state = target_state
        self.waited = waited


class SelectionError(MigrationError):
    """Raised when the eligibility query itself fails. Aborts the whole run."""


class MigrationCancelled(MigrationError):
    """Raised when the run was cancelled or its deadline passed."""


class ReplacementError(MigrationError):
    """Raised by the replacement stage.

    ``stage`` names the state the task was in when it failed and
    ``replacement`` holds the newly launched instance, if one exists.
    """

    def __init__(
        self,
        stage: str,
        message: str,
        cause: Optional[BaseException] = None,
        replacement: Any = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.replacement = replacement


class ConfigNotFoundError(Exception):
    """Raised when a configuration file or section cannot be found."""
