"""
Discriminated result returned by every facade operation.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from slotbank.config import ERROR_MESSAGES
from slotbank.errors import LedgerError

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """
    Outcome of a ledger call.

    Attributes:
        success: Whether the call succeeded
        value: The returned value on success
        error: The ledger error on failure
        elapsed_ms: Wall time the call took, in milliseconds
    """

    success: bool
    value: Optional[T] = None
    error: Optional[LedgerError] = None
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, value: Optional[T] = None, elapsed_ms: float = 0.0) -> "LedgerResult[T]":
        return cls(success=True, value=value, elapsed_ms=elapsed_ms)

    @classmethod
    def fail(cls, error: LedgerError, elapsed_ms: float = 0.0) -> "LedgerResult[T]":
        return cls(success=False, error=error, elapsed_ms=elapsed_ms)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def message(self) -> Optional[str]:
        """User-facing message for the error, if any."""
        if not self.error:
            return None
        return ERROR_MESSAGES.get(self.error.code, self.error.message)

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
