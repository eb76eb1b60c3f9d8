"""
DevnetLedger - in-process ledger for tests, demos and dry runs.

Conceptual Background:
---------------------
The devnet plays both roles the distributor relies on: it stores
accounts (mints, holdings, distributors, claim records, governance
deposits) and it runs the on-ledger program that enforces the rules.

Transaction Processing:
----------------------
1. Check the blockhash is recent and the signature id is unseen
2. Verify every required signature (submit only, not simulate)
3. Execute each instruction in order against a staged copy of state
4. On success swap the staged copy in; on any rejection discard it

Step 4 makes every transaction atomic: a claim whose governance deposit
fails leaves no claim record and moves no tokens.

The clock is explicit (`clock`, `advance_clock`) so claim windows can be
driven deterministically. `confirmation_delay` makes confirm() slow for
exercising timeouts.
"""

import asyncio
import copy
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from mdp.core.config import DEFAULT_PROGRAM_ID, DEFAULT_GOVERNANCE_PROGRAM_ID, DistributorConfig
from mdp.core.distributor.accounts import (
    DistributorAddresses,
    TOKEN_PROGRAM_ID,
    find_claim_record_address,
    find_governance_record_address,
    find_holding_address,
)
from mdp.core.distributor.instructions import (
    Instruction,
    InstructionKind,
    CURRENT_PROGRAM_VERSION,
    is_supported,
)
from mdp.core.distributor.state import (
    AssetKind,
    SUPPORTED_ASSET_KINDS,
    ClaimRecord,
    Distributor,
    GovernanceRecord,
    MintAccount,
    TokenHolding,
)
from mdp.core.errors import RemoteError
from mdp.core.ledger.client import (
    LedgerClient,
    RejectionCode,
    SimulationResult,
    TransactionStatus,
    rejection_to_error,
)
from mdp.core.merkle.verifier import verify_proof
from mdp.core.transaction import Transaction
from mdp.crypto import sha256, bytes_to_hex, short_hex, derive_program_address, DIGEST_SIZE
from mdp.utils.logger import get_logger

logger = get_logger("devnet")


MAX_RECENT_BLOCKHASHES = 150


class LedgerRejection(Exception):
    """Raised inside instruction handlers; never escapes the devnet."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class LedgerState:
    """Everything a transaction can change."""
    accounts: Dict[bytes, Any] = field(default_factory=dict)
    native_balances: Dict[bytes, int] = field(default_factory=dict)


class DevnetLedger(LedgerClient):
    """
    In-memory ledger running the distributor program.

    Attributes:
        program_id: Distributor program namespace
        clock: Ledger time (unix seconds)
        slot: Incremented per processed transaction
        claim_record_rent: Native units locked per claim record
    """

    def __init__(
        self,
        program_id: bytes = DEFAULT_PROGRAM_ID,
        program_version: int = CURRENT_PROGRAM_VERSION,
        supports_governance: bool = True,
        governance_program_id: bytes = DEFAULT_GOVERNANCE_PROGRAM_ID,
        governance_program_version: int = 3,
        clock: Optional[int] = None,
        claim_record_rent: int = 0,
        confirmation_delay: float = 0.0,
    ):
        self.program_id = program_id
        self._program_version = program_version
        self._supports_governance = supports_governance
        self.governance_program_id = governance_program_id
        self.governance_program_version = governance_program_version
        self.clock = int(time.time()) if clock is None else clock
        self.claim_record_rent = claim_record_rent
        self.confirmation_delay = confirmation_delay

        self.state = LedgerState()
        self.slot = 0
        self._mint_counter = 0
        self._blockhashes: Deque[bytes] = deque(maxlen=MAX_RECENT_BLOCKHASHES)
        self._statuses: Dict[str, TransactionStatus] = {}
        self._blockhashes.append(self._make_blockhash())

        self._handlers: Dict[InstructionKind, Callable] = {
            InstructionKind.ISSUE: self._issue,
            InstructionKind.FUND: self._fund,
            InstructionKind.SET_ROOT: self._set_root,
            InstructionKind.CLAIM: self._claim,
            InstructionKind.CLAIM_AND_DEPOSIT: self._claim_and_deposit,
            InstructionKind.CLOSE_CLAIM_RECORD: self._close_claim_record,
        }

    @classmethod
    def from_config(cls, config: DistributorConfig, **kwargs) -> "DevnetLedger":
        kwargs.setdefault("program_id", config.program_id)
        kwargs.setdefault("governance_program_id", config.governance_program_id)
        kwargs.setdefault("governance_program_version", config.governance_program_version)
        kwargs.setdefault("claim_record_rent", config.claim_record_rent)
        return cls(**kwargs)

    # =========================================================================
    # LedgerClient
    # =========================================================================

    @property
    def program_version(self) -> int:
        return self._program_version

    @property
    def supports_governance(self) -> bool:
        return self._supports_governance

    async def get_account(self, address: bytes) -> Optional[Any]:
        account = self.state.accounts.get(address)
        return copy.deepcopy(account) if account is not None else None

    async def get_balance(self, holding: bytes) -> int:
        account = self.state.accounts.get(holding)
        return account.balance if isinstance(account, TokenHolding) else 0

    async def get_clock(self) -> int:
        return self.clock

    async def get_latest_blockhash(self) -> bytes:
        return self._blockhashes[-1]

    async def simulate(self, tx: Transaction) -> SimulationResult:
        err, message, logs, _ = self._process(tx, verify_signatures=False)
        return SimulationResult(err=err, message=message, logs=logs)

    async def submit(self, tx: Transaction) -> str:
        """
        Execute a signed transaction.

        Malformed requests (unsigned, stale blockhash, bad signature,
        replay) are refused outright. Execution failures are recorded
        and reported by confirm().
        """
        if tx.fee_payer not in tx.signatures:
            raise RemoteError("Transaction is not signed by the fee payer",
                              code=RejectionCode.SIGNATURE_VERIFICATION_FAILED)
        signature = tx.signature_id
        if signature in self._statuses:
            raise RemoteError("Transaction already processed", code=RejectionCode.ALREADY_PROCESSED)

        err, message, logs, staged = self._process(tx, verify_signatures=True)
        if err in (RejectionCode.BLOCKHASH_NOT_FOUND, RejectionCode.SIGNATURE_VERIFICATION_FAILED):
            raise rejection_to_error(err, message, logs)

        self.slot += 1
        if staged is not None:
            self.state = staged
        self._blockhashes.append(self._make_blockhash())
        self._statuses[signature] = TransactionStatus(
            signature=signature, slot=self.slot, err=err, message=message, logs=logs,
        )

        if err is None:
            logger.debug(f"Slot {self.slot}: applied {tx!r}")
        else:
            logger.debug(f"Slot {self.slot}: rejected {tx!r} ({err})")
        return signature

    async def confirm(self, signature: str) -> TransactionStatus:
        if self.confirmation_delay:
            await asyncio.sleep(self.confirmation_delay)
        status = self._statuses.get(signature)
        if status is None:
            raise RemoteError(f"Unknown signature {signature[:12]}...", code="SignatureNotFound")
        return status

    # =========================================================================
    # Devnet Helpers
    # =========================================================================

    def advance_clock(self, seconds: int) -> int:
        self.clock += seconds
        return self.clock

    def airdrop(self, address: bytes, amount: int) -> int:
        """Credit native units (used for claim record rent)."""
        balance = self.state.native_balances.get(address, 0) + amount
        self.state.native_balances[address] = balance
        return balance

    def native_balance(self, address: bytes) -> int:
        return self.state.native_balances.get(address, 0)

    def create_mint(self, authority: bytes, decimals: int = 6, kind: AssetKind = AssetKind.FUNGIBLE) -> bytes:
        self._mint_counter += 1
        address = derive_program_address(
            TOKEN_PROGRAM_ID, [b"mint", authority, self._mint_counter.to_bytes(8, byteorder="big")]
        )
        self.state.accounts[address] = MintAccount(address=address, authority=authority, decimals=decimals, kind=kind)
        logger.debug(f"Created mint {short_hex(address)} ({kind.name}, {decimals} decimals)")
        return address

    def mint_to(self, owner: bytes, mint: bytes, amount: int) -> bytes:
        """Issue new tokens into `owner`'s holding. Returns the holding address."""
        mint_account = self.state.accounts.get(mint)
        if not isinstance(mint_account, MintAccount):
            raise ValueError(f"Unknown mint {bytes_to_hex(mint)}")
        holding = self._holding(self.state, owner, mint)
        holding.balance += amount
        mint_account.supply += amount
        return holding.address

    def balance_of(self, owner: bytes, mint: bytes) -> int:
        account = self.state.accounts.get(find_holding_address(owner, mint))
        return account.balance if isinstance(account, TokenHolding) else 0

    def stats(self) -> dict:
        kinds: Dict[str, int] = {}
        for account in self.state.accounts.values():
            kinds[type(account).__name__] = kinds.get(type(account).__name__, 0) + 1
        return {
            "slot": self.slot,
            "clock": self.clock,
            "program_version": self._program_version,
            "accounts": kinds,
            "transactions": len(self._statuses),
        }

    # =========================================================================
    # Processing
    # =========================================================================

    def _make_blockhash(self) -> bytes:
        return sha256(b"blockhash" + self.slot.to_bytes(8, byteorder="big") + self.program_id)

    def _process(
        self,
        tx: Transaction,
        verify_signatures: bool,
    ) -> Tuple[Optional[str], str, List[str], Optional[LedgerState]]:
        """
        Run `tx` against a staged copy of state.

        Returns:
            (error_code, message, logs, staged_state); staged_state is None
            on rejection
        """
        logs: List[str] = []
        staged = copy.deepcopy(self.state)
        try:
            if tx.recent_blockhash not in self._blockhashes:
                raise LedgerRejection(RejectionCode.BLOCKHASH_NOT_FOUND, "Blockhash not found")
            if verify_signatures and not tx.verify_signatures():
                raise LedgerRejection(RejectionCode.SIGNATURE_VERIFICATION_FAILED, "Signature verification failed")
            signers = set(tx.required_signers())

            for position, ix in enumerate(tx.instructions, start=1):
                program = short_hex(ix.program_id)
                logs.append(f"Program {program} invoke [{position}]")
                if ix.program_id != self.program_id:
                    raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Unknown program id")
                if not is_supported(ix.kind, self._program_version):
                    raise LedgerRejection(
                        RejectionCode.UNSUPPORTED_INSTRUCTION,
                        f"{ix.kind.name} requires a newer program version than {self._program_version}",
                    )
                logs.append(f"Program log: Instruction: {ix.kind.name}")
                self._handlers[ix.kind](staged, ix, signers, logs)
                logs.append(f"Program {program} success")
        except LedgerRejection as rejection:
            logs.append(f"Program log: Error: {rejection.code}: {rejection.message}")
            logs.append("Program failed")
            return rejection.code, rejection.message, logs, None
        return None, "", logs, staged

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require_signer(ix: Instruction, name: str, signers: set) -> bytes:
        meta = ix.accounts.get(name)
        if meta is None or not meta.is_signer or meta.address not in signers:
            raise LedgerRejection(RejectionCode.UNAUTHORIZED, f"Missing signature for {name}")
        return meta.address

    @staticmethod
    def _account(ix: Instruction, name: str) -> bytes:
        meta = ix.accounts.get(name)
        if meta is None:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, f"Missing account {name}")
        return meta.address

    def _load_distributor(self, state: LedgerState, ix: Instruction) -> Distributor:
        distributor = state.accounts.get(self._account(ix, "distributor"))
        if not isinstance(distributor, Distributor):
            raise LedgerRejection(RejectionCode.ACCOUNT_NOT_FOUND, "Distributor not found")
        return distributor

    @staticmethod
    def _holding(state: LedgerState, owner: bytes, mint: bytes) -> TokenHolding:
        address = find_holding_address(owner, mint)
        holding = state.accounts.get(address)
        if holding is None:
            holding = TokenHolding(address=address, owner=owner, mint=mint)
            state.accounts[address] = holding
        return holding

    @staticmethod
    def _u64(ix: Instruction, key: str, minimum: int = 0) -> int:
        value = ix.data.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or not minimum <= value < 2**64:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, f"Invalid {key}")
        return value

    @staticmethod
    def _digest(ix: Instruction, key: str) -> bytes:
        value = ix.data.get(key)
        if not isinstance(value, bytes) or len(value) != DIGEST_SIZE:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, f"Invalid {key}")
        return value

    # =========================================================================
    # Instruction Handlers
    # =========================================================================

    def _issue(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        authority = self._require_signer(ix, "authority", signers)
        mint = self._account(ix, "mint")
        expected = DistributorAddresses.derive(self.program_id, mint)
        if (self._account(ix, "distributor") != expected.distributor
                or self._account(ix, "vault_authority") != expected.vault_authority
                or self._account(ix, "vault") != expected.vault):
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Account does not match derived address")
        if expected.distributor in state.accounts:
            raise LedgerRejection(RejectionCode.ALREADY_INITIALIZED, "Distributor already initialized")

        mint_account = state.accounts.get(mint)
        if not isinstance(mint_account, MintAccount):
            raise LedgerRejection(RejectionCode.ACCOUNT_NOT_FOUND, "Mint not found")
        if mint_account.kind not in SUPPORTED_ASSET_KINDS:
            raise LedgerRejection(RejectionCode.UNSUPPORTED_ASSET_KIND, f"Unsupported asset kind {mint_account.kind.name}")

        root = self._digest(ix, "root")
        start_time = self._u64(ix, "start_time")
        end_time = self._u64(ix, "end_time")
        if end_time < start_time:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "end_time precedes start_time")
        total_allocations = ix.data.get("total_allocations")
        if total_allocations is not None:
            total_allocations = self._u64(ix, "total_allocations", minimum=1)

        state.accounts[expected.distributor] = Distributor(
            address=expected.distributor,
            mint=mint,
            vault=expected.vault,
            vault_authority=expected.vault_authority,
            authority=authority,
            root=root,
            start_time=start_time,
            end_time=end_time,
            total_allocations=total_allocations,
        )
        self._holding(state, expected.vault_authority, mint)
        logs.append(f"Program log: Issued distributor {short_hex(expected.distributor)}")

    def _fund(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        distributor = self._load_distributor(state, ix)
        authority = self._require_signer(ix, "authority", signers)
        if authority != distributor.authority:
            raise LedgerRejection(RejectionCode.UNAUTHORIZED, "Signer is not the distributor authority")
        if self._account(ix, "vault") != distributor.vault:
            raise LedgerRejection(RejectionCode.VAULT_MISMATCH, "Vault does not belong to distributor")

        source = state.accounts.get(self._account(ix, "source"))
        if not isinstance(source, TokenHolding) or source.owner != authority or source.mint != distributor.mint:
            raise LedgerRejection(RejectionCode.ACCOUNT_NOT_FOUND, "Source holding not found")
        amount = self._u64(ix, "amount", minimum=1)
        if source.balance < amount:
            raise LedgerRejection(
                RejectionCode.INSUFFICIENT_FUNDS,
                f"Insufficient funds: have {source.balance}, need {amount}",
            )

        vault = state.accounts[distributor.vault]
        source.balance -= amount
        vault.balance += amount
        distributor.total_funded += amount
        logs.append(f"Program log: Funded {amount}")

    def _set_root(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        distributor = self._load_distributor(state, ix)
        authority = self._require_signer(ix, "authority", signers)
        if authority != distributor.authority:
            raise LedgerRejection(RejectionCode.UNAUTHORIZED, "Signer is not the distributor authority")
        distributor.root = self._digest(ix, "root")
        distributor.root_version += 1
        logs.append(f"Program log: Root set to {short_hex(distributor.root)} (version {distributor.root_version})")

    def _claim(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        distributor, claimant, amount = self._withdraw(state, ix, signers, logs)
        destination = self._account(ix, "destination")
        if destination != find_holding_address(claimant, distributor.mint):
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Destination is not the claimant's holding")
        self._holding(state, claimant, distributor.mint).balance += amount
        logs.append(f"Program log: Claimed {amount}")

    def _claim_and_deposit(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        if not self._supports_governance:
            raise LedgerRejection(RejectionCode.GOVERNANCE_UNSUPPORTED, "Governance deposits are not supported")
        governance_program_id = self._account(ix, "governance_program")
        if governance_program_id != self.governance_program_id:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Unknown governance program")
        if self._u64(ix, "governance_program_version") != self.governance_program_version:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Governance program version mismatch")

        distributor, claimant, amount = self._withdraw(state, ix, signers, logs)
        realm = self._account(ix, "realm")
        address = find_governance_record_address(governance_program_id, realm, distributor.mint, claimant)
        if self._account(ix, "governance_record") != address:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Governance record does not match derived address")

        record = state.accounts.get(address)
        if record is None:
            record = GovernanceRecord(
                address=address,
                governance_program_id=governance_program_id,
                realm=realm,
                mint=distributor.mint,
                owner=claimant,
            )
            state.accounts[address] = record
        record.deposited += amount
        logs.append(f"Program log: Claimed {amount} and deposited into realm {short_hex(realm)}")

    def _withdraw(
        self,
        state: LedgerState,
        ix: Instruction,
        signers: set,
        logs: List[str],
    ) -> Tuple[Distributor, bytes, int]:
        """Checks shared by both claim instructions; debits the vault."""
        distributor = self._load_distributor(state, ix)
        claimant = self._require_signer(ix, "claimant", signers)
        if self._account(ix, "vault") != distributor.vault:
            raise LedgerRejection(RejectionCode.VAULT_MISMATCH, "Vault does not belong to distributor")
        if not distributor.is_within_window(self.clock):
            raise LedgerRejection(RejectionCode.CLAIM_WINDOW_CLOSED, "Claim window is closed")

        record_address = find_claim_record_address(self.program_id, distributor.address, claimant)
        if self._account(ix, "claim_record") != record_address:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Claim record does not match derived address")
        if record_address in state.accounts:
            raise LedgerRejection(RejectionCode.ALREADY_CLAIMED, "Allocation already claimed")

        index = self._u64(ix, "index")
        amount = self._u64(ix, "amount", minimum=1)
        proof = ix.data.get("proof")
        if not verify_proof(claimant, index, amount, distributor.address, proof, distributor.root):
            raise LedgerRejection(RejectionCode.INVALID_PROOF, "Invalid proof")
        if distributor.total_allocations is not None and distributor.total_claimed + amount > distributor.total_allocations:
            raise LedgerRejection(
                RejectionCode.AMOUNT_MISMATCH,
                f"Claim of {amount} exceeds remaining allocation "
                f"{distributor.total_allocations - distributor.total_claimed}",
            )

        vault = state.accounts[distributor.vault]
        if vault.balance < amount:
            raise LedgerRejection(
                RejectionCode.INSUFFICIENT_FUNDS,
                f"Vault holds {vault.balance}, claim needs {amount}",
            )
        native = state.native_balances.get(claimant, 0)
        if native < self.claim_record_rent:
            raise LedgerRejection(
                RejectionCode.INSUFFICIENT_FUNDS,
                f"Claim record needs {self.claim_record_rent} native units, claimant has {native}",
            )

        vault.balance -= amount
        state.native_balances[claimant] = native - self.claim_record_rent
        state.accounts[record_address] = ClaimRecord(
            address=record_address,
            distributor=distributor.address,
            claimant=claimant,
            index=index,
            amount=amount,
            claimed_at=self.clock,
            rent=self.claim_record_rent,
        )
        distributor.total_claimed += amount
        distributor.num_claimed += 1
        logs.append(f"Program log: Proof verified for index {index}")
        return distributor, claimant, amount

    def _close_claim_record(self, state: LedgerState, ix: Instruction, signers: set, logs: List[str]) -> None:
        distributor = self._load_distributor(state, ix)
        claimant = self._require_signer(ix, "claimant", signers)
        record_address = self._account(ix, "claim_record")
        record = state.accounts.get(record_address)
        if not isinstance(record, ClaimRecord):
            raise LedgerRejection(RejectionCode.ACCOUNT_NOT_FOUND, "Claim record not found")
        if record.claimant != claimant:
            raise LedgerRejection(RejectionCode.UNAUTHORIZED, "Signer does not own the claim record")
        if record.distributor != distributor.address:
            raise LedgerRejection(RejectionCode.INVALID_ARGUMENT, "Claim record belongs to another distributor")
        if self.clock <= distributor.end_time:
            raise LedgerRejection(RejectionCode.CLAIM_WINDOW_OPEN, "Claim window has not ended")

        del state.accounts[record_address]
        state.native_balances[claimant] = state.native_balances.get(claimant, 0) + record.rent
        logs.append(f"Program log: Closed claim record, refunded {record.rent}")

    def __repr__(self) -> str:
        return f"DevnetLedger(slot={self.slot}, accounts={len(self.state.accounts)}, clock={self.clock})"
