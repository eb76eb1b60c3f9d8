"""
Error taxonomy for MDP.

    MDPError
    ├── ValidationError          malformed local input, never sent remotely
    │   ├── InvalidInput
    │   └── EntryNotFound
    ├── StateError               ledger state forbids the operation
    │   ├── AlreadyInitialized
    │   ├── AlreadyClaimed
    │   ├── NotFound
    │   ├── VaultMismatch
    │   ├── InsufficientFunds
    │   ├── UnsupportedAssetKind
    │   ├── UnsupportedOperation
    │   ├── GovernanceDepositUnsupported
    │   ├── ClaimWindowClosed
    │   └── ClaimWindowOpen
    ├── AuthorizationError       wrong authority or claimant
    ├── RemoteError              rejected by the ledger, or the call failed
    │   ├── InvalidProof
    │   ├── AmountMismatch
    │   └── RemoteTimeout
    └── BatchSubmissionError     a batch failed after others were confirmed

Proof verification itself never raises: a non-matching proof is a normal
`False` result. `InvalidProof` is only raised when a claim is refused.
"""

from typing import List, Optional


class MDPError(Exception):
    """Base class for all MDP errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


# =============================================================================
# Validation
# =============================================================================


class ValidationError(MDPError):
    """Malformed or inconsistent local input."""


class InvalidInput(ValidationError):
    """Input that cannot be turned into a distribution."""


class EntryNotFound(ValidationError):
    """No manifest entry exists for the requested recipient."""


# =============================================================================
# State
# =============================================================================


class StateError(MDPError):
    """The current ledger state does not allow the operation."""


class AlreadyInitialized(StateError):
    pass


class AlreadyClaimed(StateError):
    pass


class NotFound(StateError):
    pass


class VaultMismatch(StateError):
    pass


class InsufficientFunds(StateError):
    def __init__(self, message: str, available: int = 0, required: int = 0, field: Optional[str] = None):
        super().__init__(message, field=field)
        self.available = available
        self.required = required


class UnsupportedAssetKind(StateError):
    pass


class UnsupportedOperation(StateError):
    pass


class GovernanceDepositUnsupported(StateError):
    pass


class ClaimWindowClosed(StateError):
    """Claim attempted before start_time or after end_time."""


class ClaimWindowOpen(StateError):
    """Claim record close attempted while claims are still possible."""


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(MDPError):
    """Actor is not the recorded authority or claimant."""


# =============================================================================
# Remote
# =============================================================================


class RemoteError(MDPError):
    """
    Failure reported by (or while talking to) the ledger.

    Attributes:
        code: Machine-readable rejection code, if the ledger gave one
        logs: Execution log lines returned with the failure
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        logs: Optional[List[str]] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message, field=field)
        self.code = code
        self.logs = list(logs or [])


class InvalidProof(RemoteError):
    pass


class AmountMismatch(RemoteError):
    pass


class RemoteTimeout(RemoteError):
    """A remote call did not finish within its caller-supplied timeout."""


# =============================================================================
# Batching
# =============================================================================


class BatchSubmissionError(MDPError):
    """
    A batch failed. Earlier batches stay confirmed; later ones were not sent.

    Attributes:
        completed_batches: Batches confirmed before the failure
        total_batches: Batches in the whole submission
        signatures: Confirmation ids of the completed batches
        cause: The error that stopped the submission
    """

    def __init__(
        self,
        completed_batches: int,
        total_batches: int,
        signatures: List[str],
        cause: Exception,
    ):
        super().__init__(
            f"Batch {completed_batches + 1}/{total_batches} failed after "
            f"{completed_batches} confirmed: {cause}"
        )
        self.completed_batches = completed_batches
        self.total_batches = total_batches
        self.signatures = list(signatures)
        self.cause = cause

    @property
    def remaining_batches(self) -> int:
        return self.total_batches - self.completed_batches


# =============================================================================
# Formatting
# =============================================================================


MAX_DISPLAY_LOG_LINES = 12


def format_error_with_logs(error: Exception, fallback: str = "Request failed.") -> str:
    """Render an error message followed by its last log lines, if any."""
    message = str(error) or fallback
    logs = getattr(error, "logs", None) or []
    if not logs:
        return message
    tail = "\n".join(logs[-MAX_DISPLAY_LOG_LINES:])
    return f"{message}\nLogs:\n{tail}"
