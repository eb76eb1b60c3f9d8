"""
Ledger collaborator interface.

The distributor never holds ledger state itself. It reads accounts and
the clock, and sends signed transactions, through a LedgerClient. The
ledger re-checks everything the client checked (proofs, windows,
double claims, balances) and is the final authority.

Request Flow:
------------
    build tx -> simulate -> sign -> submit -> confirm

simulate executes the transaction against current state without
applying it and returns its execution logs, so a doomed request fails
before a signature is spent. confirm waits for the submitted request's
outcome. Rejections carry a machine-readable code that maps onto the
error taxonomy in mdp.core.errors.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from mdp.core.errors import (
    MDPError,
    RemoteError,
    RemoteTimeout,
    InvalidProof,
    AmountMismatch,
    AlreadyClaimed,
    AlreadyInitialized,
    AuthorizationError,
    ClaimWindowClosed,
    ClaimWindowOpen,
    GovernanceDepositUnsupported,
    InsufficientFunds,
    NotFound,
    UnsupportedAssetKind,
    UnsupportedOperation,
    VaultMismatch,
)
from mdp.core.distributor.instructions import Instruction
from mdp.core.transaction import Transaction
from mdp.utils.logger import get_logger

logger = get_logger("ledger")


# =============================================================================
# Rejection Codes
# =============================================================================


class RejectionCode:
    INVALID_PROOF = "InvalidProof"
    AMOUNT_MISMATCH = "AmountMismatch"
    ALREADY_CLAIMED = "AlreadyClaimed"
    ALREADY_INITIALIZED = "AlreadyInitialized"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    VAULT_MISMATCH = "VaultMismatch"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    UNAUTHORIZED = "Unauthorized"
    CLAIM_WINDOW_CLOSED = "ClaimWindowClosed"
    CLAIM_WINDOW_OPEN = "ClaimWindowOpen"
    UNSUPPORTED_ASSET_KIND = "UnsupportedAssetKind"
    UNSUPPORTED_INSTRUCTION = "UnsupportedInstruction"
    GOVERNANCE_UNSUPPORTED = "GovernanceDepositUnsupported"
    INVALID_ARGUMENT = "InvalidArgument"
    SIGNATURE_VERIFICATION_FAILED = "SignatureVerificationFailed"
    BLOCKHASH_NOT_FOUND = "BlockhashNotFound"
    ALREADY_PROCESSED = "AlreadyProcessed"


_REJECTION_ERRORS = {
    RejectionCode.INVALID_PROOF: InvalidProof,
    RejectionCode.AMOUNT_MISMATCH: AmountMismatch,
}

_STATE_REJECTIONS = {
    RejectionCode.ALREADY_CLAIMED: AlreadyClaimed,
    RejectionCode.ALREADY_INITIALIZED: AlreadyInitialized,
    RejectionCode.ACCOUNT_NOT_FOUND: NotFound,
    RejectionCode.VAULT_MISMATCH: VaultMismatch,
    RejectionCode.INSUFFICIENT_FUNDS: InsufficientFunds,
    RejectionCode.UNAUTHORIZED: AuthorizationError,
    RejectionCode.CLAIM_WINDOW_CLOSED: ClaimWindowClosed,
    RejectionCode.CLAIM_WINDOW_OPEN: ClaimWindowOpen,
    RejectionCode.UNSUPPORTED_ASSET_KIND: UnsupportedAssetKind,
    RejectionCode.UNSUPPORTED_INSTRUCTION: UnsupportedOperation,
    RejectionCode.GOVERNANCE_UNSUPPORTED: GovernanceDepositUnsupported,
}


def rejection_to_error(code: Optional[str], message: str, logs: Sequence[str] = ()) -> MDPError:
    """
    Map a ledger rejection onto the error taxonomy.

    Proof and amount rejections become their RemoteError subclasses. Codes
    that mirror a client-side precondition (a claim that raced another
    claim, say) become the matching state error with the logs attached.
    Anything else is a plain RemoteError.
    """
    if code in _REJECTION_ERRORS:
        return _REJECTION_ERRORS[code](message, code=code, logs=list(logs))
    if code in _STATE_REJECTIONS:
        error = _STATE_REJECTIONS[code](message)
        error.code = code
        error.logs = list(logs)
        return error
    return RemoteError(message, code=code, logs=list(logs))


# =============================================================================
# Results
# =============================================================================


@dataclass
class SimulationResult:
    """Outcome of executing a transaction without applying it."""
    err: Optional[str] = None
    message: str = ""
    logs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.err is None


@dataclass
class TransactionStatus:
    """Outcome of a submitted transaction."""
    signature: str
    slot: int
    err: Optional[str] = None
    message: str = ""
    logs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.err is None


# =============================================================================
# Client Interface
# =============================================================================


class LedgerClient(ABC):
    """Asynchronous access to a ledger."""

    @property
    @abstractmethod
    def program_version(self) -> int:
        """Deployed distributor program version."""

    @property
    @abstractmethod
    def supports_governance(self) -> bool:
        """Whether claim-and-deposit is available."""

    @abstractmethod
    async def get_account(self, address: bytes) -> Optional[Any]:
        """Fetch the record stored at `address`, or None."""

    @abstractmethod
    async def get_balance(self, holding: bytes) -> int:
        """Token balance of a holding (0 if it does not exist)."""

    @abstractmethod
    async def get_clock(self) -> int:
        """Ledger time in unix seconds."""

    @abstractmethod
    async def get_latest_blockhash(self) -> bytes:
        """Blockhash to anchor a new transaction to."""

    @abstractmethod
    async def simulate(self, tx: Transaction) -> SimulationResult:
        """Execute `tx` against current state without applying it."""

    @abstractmethod
    async def submit(self, tx: Transaction) -> str:
        """Send a signed transaction. Returns its signature id."""

    @abstractmethod
    async def confirm(self, signature: str) -> TransactionStatus:
        """Wait for the outcome of a submitted transaction."""


# =============================================================================
# Send Helper
# =============================================================================


async def call_with_timeout(awaitable, timeout: Optional[float], what: str):
    """Await a remote call, converting a timeout into RemoteTimeout."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise RemoteTimeout(f"{what} timed out after {timeout}s", code="Timeout")


async def send_and_confirm(
    ledger: LedgerClient,
    signer,
    instructions: List[Instruction],
    confirm_timeout: Optional[float] = None,
    simulate: bool = True,
) -> str:
    """
    Build, simulate, sign, submit and confirm one transaction.

    Args:
        ledger: Ledger client
        signer: Wallet paying for and signing the request
        instructions: Instructions to execute atomically
        confirm_timeout: Seconds allowed for each remote call
        simulate: Run a simulation before signing

    Returns:
        Signature id of the confirmed transaction

    Raises:
        RemoteError (or a mapped state error): rejected by the ledger
        RemoteTimeout: a remote call exceeded confirm_timeout
    """
    blockhash = await call_with_timeout(ledger.get_latest_blockhash(), confirm_timeout, "get_latest_blockhash")
    tx = Transaction(instructions=list(instructions), fee_payer=signer.address, recent_blockhash=blockhash)

    if simulate:
        result = await call_with_timeout(ledger.simulate(tx), confirm_timeout, "simulate")
        if not result.ok:
            logger.warning(f"Simulation rejected {tx!r}: {result.err}")
            raise rejection_to_error(result.err, result.message or "Simulation failed", result.logs)

    signer.sign_transaction(tx)
    signature = await call_with_timeout(ledger.submit(tx), confirm_timeout, "submit")
    status = await call_with_timeout(ledger.confirm(signature), confirm_timeout, "confirm")
    if not status.ok:
        logger.warning(f"Transaction {signature[:12]}... failed: {status.err}")
        raise rejection_to_error(status.err, status.message or "Transaction failed", status.logs)

    logger.debug(f"Confirmed {tx!r} at slot {status.slot}")
    return signature
