"""Ledger access: the client interface and the in-process devnet"""
from mdp.core.ledger.client import (
    LedgerClient,
    RejectionCode,
    SimulationResult,
    TransactionStatus,
    call_with_timeout,
    rejection_to_error,
    send_and_confirm,
)
from mdp.core.ledger.devnet import DevnetLedger

__all__ = [
    "LedgerClient",
    "RejectionCode",
    "SimulationResult",
    "TransactionStatus",
    "call_with_timeout",
    "rejection_to_error",
    "send_and_confirm",
    "DevnetLedger",
]
