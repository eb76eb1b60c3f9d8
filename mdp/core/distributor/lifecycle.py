"""
DistributorLifecycle - issue, fund, rotate, claim and clean up.

Conceptual Background:
---------------------
A distributor escrows one asset (a mint) in a vault and releases it to
recipients who present a Merkle proof of their allocation. The lifecycle
runs client-side: it checks every precondition it can from ledger reads,
fails fast with a specific error, and only then builds, simulates, signs
and submits the request. The ledger re-checks everything.

    issue -> fund -> (start_time) -> claim ... -> (end_time) -> close records

The acting wallet is passed to every operation; the lifecycle holds no
notion of a "current user".

Claim Flow:
----------
1. Optionally verify the proof locally against the package's root
2. Derive the claim record for (distributor, claimant); AlreadyClaimed if
   it exists
3. Check the claim window against the ledger clock
4. Simulate, sign, submit, confirm; remote rejections surface as
   InvalidProof / AmountMismatch / RemoteError with execution logs
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from mdp.core.batch import BatchResult, BatchSubmitter
from mdp.core.codec.manifest import ClaimPackage, ResolvedClaim, iter_claims
from mdp.core.config import DistributorConfig
from mdp.core.distributor.accounts import (
    DistributorAddresses,
    find_governance_record_address,
    find_holding_address,
)
from mdp.core.distributor.instructions import (
    Instruction,
    InstructionKind,
    MIN_PROGRAM_VERSION,
    is_supported,
    issue_instruction,
    fund_instruction,
    set_root_instruction,
    claim_instruction,
    claim_and_deposit_instruction,
    close_claim_record_instruction,
)
from mdp.core.distributor.state import (
    SUPPORTED_ASSET_KINDS,
    ClaimRecord,
    Distributor,
    DistributorState,
    MintAccount,
    derive_state,
)
from mdp.core.errors import (
    AlreadyClaimed,
    AlreadyInitialized,
    AuthorizationError,
    ClaimWindowClosed,
    ClaimWindowOpen,
    GovernanceDepositUnsupported,
    InsufficientFunds,
    InvalidProof,
    NotFound,
    UnsupportedAssetKind,
    UnsupportedOperation,
    ValidationError,
    VaultMismatch,
)
from mdp.core.ledger.client import LedgerClient, call_with_timeout, send_and_confirm
from mdp.core.merkle.verifier import verify_proof
from mdp.crypto import bytes_to_hex, short_hex
from mdp.utils.logger import get_logger
from mdp.utils.validation import validate_amount, validate_hash, validate_index, validate_timestamp

logger = get_logger("lifecycle")


# =============================================================================
# Results
# =============================================================================


@dataclass
class IssueResult:
    signature: str
    addresses: DistributorAddresses


@dataclass
class ClaimResult:
    """
    Attributes:
        signature: Confirmation id
        claim_record: Address of the new claim record
        amount: Units released from the vault
        destination: Claimant holding, or governance record when deposited
        deposited: True when the amount went to a governance record
    """
    signature: str
    claim_record: bytes
    amount: int
    destination: bytes
    deposited: bool = False


@dataclass
class RootUpdate:
    mint: bytes
    root: bytes


# =============================================================================
# Lifecycle
# =============================================================================


class DistributorLifecycle:
    """
    Client-side driver for one distributor program.

    Attributes:
        ledger: Ledger collaborator
        program_id: Program namespace for address derivation
        config: Timeouts, batching limits and claim defaults
    """

    def __init__(
        self,
        ledger: LedgerClient,
        program_id: Optional[bytes] = None,
        config: Optional[DistributorConfig] = None,
    ):
        self.config = config or DistributorConfig()
        self.ledger = ledger
        self.program_id = program_id if program_id is not None else self.config.program_id

    # =========================================================================
    # Addresses and Reads
    # =========================================================================

    def addresses(self, mint: bytes) -> DistributorAddresses:
        return DistributorAddresses.derive(self.program_id, mint)

    def find_distributor_address(self, mint: bytes) -> bytes:
        return self.addresses(mint).distributor

    def find_claim_record_address(self, mint: bytes, claimant: bytes) -> bytes:
        return self.addresses(mint).claim_record(claimant)

    async def _call(self, awaitable, what: str):
        return await call_with_timeout(awaitable, self.config.confirm_timeout, what)

    async def get_distributor(self, mint: bytes) -> Optional[Distributor]:
        account = await self._call(self.ledger.get_account(self.find_distributor_address(mint)), "get_account")
        return account if isinstance(account, Distributor) else None

    async def get_claim_record(self, mint: bytes, claimant: bytes) -> Optional[ClaimRecord]:
        address = self.find_claim_record_address(mint, claimant)
        account = await self._call(self.ledger.get_account(address), "get_account")
        return account if isinstance(account, ClaimRecord) else None

    async def get_state(self, mint: bytes) -> DistributorState:
        distributor = await self.get_distributor(mint)
        if distributor is None:
            return DistributorState.UNINITIALIZED
        vault_balance = await self._call(self.ledger.get_balance(distributor.vault), "get_balance")
        now = await self._call(self.ledger.get_clock(), "get_clock")
        return derive_state(distributor, vault_balance, now)

    async def _require_distributor(self, mint: bytes) -> Distributor:
        distributor = await self.get_distributor(mint)
        if distributor is None:
            raise NotFound(f"No distributor for mint {bytes_to_hex(mint)}", field="mint")
        return distributor

    @staticmethod
    def _require_authority(actor, distributor: Distributor) -> None:
        if actor.address != distributor.authority:
            raise AuthorizationError(
                f"{bytes_to_hex(actor.address)} is not the authority of distributor "
                f"{bytes_to_hex(distributor.address)}",
                field="authority",
            )

    async def _send(self, actor, instructions: List[Instruction]) -> str:
        return await send_and_confirm(
            self.ledger,
            actor,
            instructions,
            confirm_timeout=self.config.confirm_timeout,
            simulate=self.config.simulate_before_submit,
        )

    # =========================================================================
    # Issue / Fund / Rotate
    # =========================================================================

    async def issue(
        self,
        actor,
        mint: bytes,
        root: bytes,
        start_time: int,
        end_time: int,
        total_allocations: Optional[int] = None,
    ) -> IssueResult:
        """
        Create the distributor for `mint` with `actor` as its authority.

        Raises:
            ValidationError: bad root, timestamps, or end_time < start_time
            AlreadyInitialized: a distributor already exists for the mint
            NotFound: the mint does not exist
            UnsupportedAssetKind: the mint is not fungible
        """
        for valid, err, name in (
            (*validate_hash(root, "root"), "root"),
            (*validate_timestamp(start_time, "start_time"), "start_time"),
            (*validate_timestamp(end_time, "end_time"), "end_time"),
        ):
            if not valid:
                raise ValidationError(err, field=name)
        if end_time < start_time:
            raise ValidationError("end_time must not precede start_time", field="end_time")
        if total_allocations is not None:
            valid, err = validate_amount(total_allocations, "total_allocations")
            if not valid:
                raise ValidationError(err, field="total_allocations")

        addresses = self.addresses(mint)
        if await self.get_distributor(mint) is not None:
            raise AlreadyInitialized(
                f"Distributor {bytes_to_hex(addresses.distributor)} already exists",
                field="mint",
            )

        mint_account = await self._call(self.ledger.get_account(mint), "get_account")
        if not isinstance(mint_account, MintAccount):
            raise NotFound(f"Mint {bytes_to_hex(mint)} not found", field="mint")
        if mint_account.kind not in SUPPORTED_ASSET_KINDS:
            raise UnsupportedAssetKind(f"Mint kind {mint_account.kind.name} is not supported", field="mint")

        signature = await self._send(actor, [
            issue_instruction(addresses, actor.address, root, start_time, end_time, total_allocations)
        ])
        logger.info(
            f"Issued distributor {short_hex(addresses.distributor)} for mint {short_hex(mint)} "
            f"root={short_hex(root)} window=[{start_time}, {end_time}]"
        )
        return IssueResult(signature=signature, addresses=addresses)

    async def fund(self, actor, mint: bytes, vault: bytes, amount: int) -> str:
        """
        Move `amount` from the actor's holding into the distributor vault.

        Raises:
            NotFound: no distributor for the mint
            VaultMismatch: `vault` is not the derived vault
            InsufficientFunds: actor's balance is below `amount`
        """
        valid, err = validate_amount(amount)
        if not valid:
            raise ValidationError(err, field="amount")

        distributor = await self._require_distributor(mint)
        derived_vault = self.addresses(mint).vault
        if vault != derived_vault or vault != distributor.vault:
            raise VaultMismatch(
                f"Vault {bytes_to_hex(vault)} does not match derived vault {bytes_to_hex(derived_vault)}",
                field="vault",
            )
        self._require_authority(actor, distributor)

        source = find_holding_address(actor.address, mint)
        available = await self._call(self.ledger.get_balance(source), "get_balance")
        if available < amount:
            raise InsufficientFunds(
                f"Insufficient funds: have {available}, need {amount}",
                available=available,
                required=amount,
                field="amount",
            )

        signature = await self._send(actor, [fund_instruction(self.addresses(mint), actor.address, amount)])
        logger.info(f"Funded {short_hex(distributor.address)} with {amount}")
        return signature

    async def set_root(self, actor, mint: bytes, new_root: bytes) -> str:
        """Replace the root. Proofs built against the old root stop verifying."""
        valid, err = validate_hash(new_root, "root")
        if not valid:
            raise ValidationError(err, field="root")

        distributor = await self._require_distributor(mint)
        self._require_authority(actor, distributor)

        signature = await self._send(actor, [set_root_instruction(self.addresses(mint), actor.address, new_root)])
        logger.info(
            f"Rotated root of {short_hex(distributor.address)}: "
            f"{short_hex(distributor.root)} -> {short_hex(new_root)}"
        )
        return signature

    async def set_roots(
        self,
        actor,
        updates: Sequence[Union[RootUpdate, Tuple[bytes, bytes]]],
        max_per_batch: Optional[int] = None,
    ) -> BatchResult:
        """
        Rotate the roots of many distributors, batched.

        Every update is checked locally before anything is sent.

        Raises:
            NotFound / AuthorizationError: before any batch is sent
            BatchSubmissionError: a batch failed after earlier ones confirmed
        """
        instructions = []
        for update in updates:
            mint, root = (update.mint, update.root) if isinstance(update, RootUpdate) else update
            valid, err = validate_hash(root, "root")
            if not valid:
                raise ValidationError(err, field="root")
            distributor = await self._require_distributor(mint)
            self._require_authority(actor, distributor)
            instructions.append(set_root_instruction(self.addresses(mint), actor.address, root))

        submitter = BatchSubmitter(
            self.ledger,
            max_instructions_per_request=max_per_batch or self.config.max_instructions_per_request,
            confirm_timeout=self.config.confirm_timeout,
            simulate=self.config.simulate_before_submit,
        )
        result = await submitter.submit(actor, instructions)
        logger.info(f"Rotated {len(instructions)} roots in {result.batch_count} batches")
        return result

    # =========================================================================
    # Claim
    # =========================================================================

    def _as_resolved(self, claim: Union[ResolvedClaim, ClaimPackage]) -> ResolvedClaim:
        if isinstance(claim, ResolvedClaim):
            return claim
        if isinstance(claim, ClaimPackage):
            return next(iter_claims(claim, self.program_id))
        raise ValidationError(f"Cannot claim from {type(claim).__name__}", field="claim")

    async def claim(
        self,
        actor,
        claim: Union[ResolvedClaim, ClaimPackage],
        verify_locally: Optional[bool] = None,
    ) -> ClaimResult:
        """
        Claim an allocation for `actor`.

        When the entry carries a realm, the amount is deposited into the
        actor's governance record in the same request.

        Args:
            actor: Claiming wallet (must be the allocation's recipient)
            claim: Resolved manifest entry or a single claim package
            verify_locally: Check the proof before sending (defaults to
                config.verify_proofs_locally)

        Raises:
            AuthorizationError: the entry names a different recipient
            InvalidProof: local check failed, or the ledger rejected the proof
            AlreadyClaimed: a claim record exists for (distributor, actor)
            ClaimWindowClosed: ledger clock outside [start_time, end_time]
            GovernanceDepositUnsupported: realm given, ledger cannot deposit
            AmountMismatch / RemoteError: other ledger rejections
        """
        entry = self._as_resolved(claim)
        claimant = actor.address

        if entry.recipient is not None and entry.recipient != claimant:
            raise AuthorizationError(
                f"Entry belongs to {bytes_to_hex(entry.recipient)}, not {bytes_to_hex(claimant)}",
                field="recipient",
            )
        for valid, err, name in (
            (*validate_index(entry.index), "index"),
            (*validate_amount(entry.amount), "amount"),
        ):
            if not valid:
                raise ValidationError(err, field=name)

        addresses = self.addresses(entry.mint)
        if entry.distributor != addresses.distributor:
            raise ValidationError(
                f"Distributor {bytes_to_hex(entry.distributor)} is not derived from mint "
                f"{bytes_to_hex(entry.mint)}",
                field="distributor",
            )

        if verify_locally is None:
            verify_locally = self.config.verify_proofs_locally
        if verify_locally and not verify_proof(
            claimant, entry.index, entry.amount, addresses.distributor, entry.proof, entry.root
        ):
            raise InvalidProof("Proof does not verify against the claim root", code="LocalVerification", field="proof")

        distributor = await self._require_distributor(entry.mint)
        if entry.vault != distributor.vault:
            raise VaultMismatch(
                f"Vault {bytes_to_hex(entry.vault)} does not belong to distributor "
                f"{bytes_to_hex(distributor.address)}",
                field="vault",
            )

        record_address = addresses.claim_record(claimant)
        if await self._call(self.ledger.get_account(record_address), "get_account") is not None:
            raise AlreadyClaimed(
                f"{bytes_to_hex(claimant)} already claimed from {bytes_to_hex(distributor.address)}",
                field="claim_record",
            )

        now = await self._call(self.ledger.get_clock(), "get_clock")
        if not distributor.is_within_window(now):
            raise ClaimWindowClosed(
                f"Claim window [{distributor.start_time}, {distributor.end_time}] does not include {now}",
                field="window",
            )

        if entry.has_governance_deposit:
            if not self.ledger.supports_governance:
                raise GovernanceDepositUnsupported(
                    "Ledger does not support governance deposits", field="realm"
                )
            governance_program_id = entry.governance_program_id
            if governance_program_id is None:
                governance_program_id = self.config.governance_program_id
            governance_program_version = entry.governance_program_version
            if governance_program_version is None:
                governance_program_version = self.config.governance_program_version
            instruction = claim_and_deposit_instruction(
                addresses, claimant, entry.index, entry.amount, entry.proof,
                realm=entry.realm,
                governance_program_id=governance_program_id,
                governance_program_version=governance_program_version,
            )
            destination = find_governance_record_address(governance_program_id, entry.realm, entry.mint, claimant)
        else:
            instruction = claim_instruction(addresses, claimant, entry.index, entry.amount, entry.proof)
            destination = find_holding_address(claimant, entry.mint)

        signature = await self._send(actor, [instruction])
        logger.info(
            f"Claimed {entry.amount} (index {entry.index}) from {short_hex(distributor.address)} "
            f"for {short_hex(claimant)}" + (" with governance deposit" if entry.has_governance_deposit else "")
        )
        return ClaimResult(
            signature=signature,
            claim_record=record_address,
            amount=entry.amount,
            destination=destination,
            deposited=entry.has_governance_deposit,
        )

    async def close_claim_record(self, actor, mint: bytes, claimant: Optional[bytes] = None) -> str:
        """
        Close the actor's claim record and reclaim its storage deposit.

        Raises:
            UnsupportedOperation: program version predates the instruction
            AuthorizationError: `claimant` is someone other than the actor
            NotFound: no distributor or no claim record
            ClaimWindowOpen: the claim window has not ended
        """
        if not is_supported(InstructionKind.CLOSE_CLAIM_RECORD, self.ledger.program_version):
            raise UnsupportedOperation(
                f"Closing claim records needs program version "
                f"{MIN_PROGRAM_VERSION[InstructionKind.CLOSE_CLAIM_RECORD]}, "
                f"ledger runs {self.ledger.program_version}",
            )
        if claimant is not None and claimant != actor.address:
            raise AuthorizationError("Only the claimant can close their claim record", field="claimant")

        distributor = await self._require_distributor(mint)
        record = await self.get_claim_record(mint, actor.address)
        if record is None:
            raise NotFound(f"No claim record for {bytes_to_hex(actor.address)}", field="claim_record")

        now = await self._call(self.ledger.get_clock(), "get_clock")
        if now <= distributor.end_time:
            raise ClaimWindowOpen(
                f"Claim window is open until {distributor.end_time}", field="window"
            )

        signature = await self._send(actor, [close_claim_record_instruction(self.addresses(mint), actor.address)])
        logger.info(f"Closed claim record {short_hex(record.address)}, reclaimed {record.rent}")
        return signature
