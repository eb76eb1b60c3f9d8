"""
Unit tests for transactions, instructions and wallets.

Tests cover:
1. Instruction encoding and signer extraction
2. Signing hash and required signers
3. Signature verification
4. Program version gating
5. Wallet encrypted export
"""

import pytest

from mdp.core.config import DEFAULT_PROGRAM_ID
from mdp.core.distributor.accounts import DistributorAddresses
from mdp.core.distributor.instructions import (
    InstructionKind,
    MIN_PROGRAM_VERSION,
    claim_instruction,
    close_claim_record_instruction,
    fund_instruction,
    is_supported,
    set_root_instruction,
)
from mdp.core.errors import InvalidInput, MDPError
from mdp.core.identity import Wallet
from mdp.core.transaction import MAX_INSTRUCTIONS, Transaction
from mdp.crypto import sha256


MINT = bytes([0x3C]) * 20
BLOCKHASH = sha256(b"blockhash")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def addresses():
    return DistributorAddresses.derive(DEFAULT_PROGRAM_ID, MINT)


@pytest.fixture
def authority():
    return Wallet.generate("authority")


@pytest.fixture
def claimant():
    return Wallet.generate("claimant")


class TestInstructions:
    """Instruction builders and canonical encoding."""

    def test_claim_signers(self, addresses, claimant):
        ix = claim_instruction(addresses, claimant.address, 0, 100, [bytes(32)])
        assert ix.signers == [claimant.address]
        assert ix.account("claim_record") == addresses.claim_record(claimant.address)

    def test_encoding_is_deterministic(self, addresses, authority):
        a = set_root_instruction(addresses, authority.address, bytes([1]) * 32)
        b = set_root_instruction(addresses, authority.address, bytes([1]) * 32)
        assert a.to_bytes() == b.to_bytes()

    def test_encoding_binds_data(self, addresses, authority):
        a = fund_instruction(addresses, authority.address, 100)
        b = fund_instruction(addresses, authority.address, 101)
        assert a.to_bytes() != b.to_bytes()

    def test_unknown_account(self, addresses, authority):
        ix = set_root_instruction(addresses, authority.address, bytes(32))
        with pytest.raises(KeyError):
            ix.account("vault")


class TestProgramVersions:
    """Instructions gated on the deployed program version."""

    def test_close_needs_version_two(self):
        assert MIN_PROGRAM_VERSION[InstructionKind.CLOSE_CLAIM_RECORD] == 2
        assert not is_supported(InstructionKind.CLOSE_CLAIM_RECORD, 1)
        assert is_supported(InstructionKind.CLOSE_CLAIM_RECORD, 2)

    def test_claim_available_everywhere(self):
        assert is_supported(InstructionKind.CLAIM, 1)


class TestTransaction:
    """Signing hash, signers and signatures."""

    def test_fee_payer_is_first_signer(self, addresses, authority, claimant):
        ix = claim_instruction(addresses, claimant.address, 0, 100, [])
        tx = Transaction([ix, ix], fee_payer=authority.address, recent_blockhash=BLOCKHASH)
        assert tx.required_signers() == [authority.address, claimant.address]

    def test_signing_hash_binds_blockhash(self, addresses, claimant):
        ix = close_claim_record_instruction(addresses, claimant.address)
        tx1 = Transaction([ix], fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        tx2 = Transaction([ix], fee_payer=claimant.address, recent_blockhash=sha256(b"other"))
        assert tx1.compute_signing_hash() != tx2.compute_signing_hash()

    def test_sign_and_verify(self, addresses, claimant):
        ix = claim_instruction(addresses, claimant.address, 3, 100, [])
        tx = Transaction([ix], fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        assert not tx.verify_signatures()
        claimant.sign_transaction(tx)
        assert tx.is_fully_signed()
        assert tx.verify_signatures()
        assert tx.signature_id.startswith("0x")

    def test_missing_co_signer(self, addresses, authority, claimant):
        ix = claim_instruction(addresses, claimant.address, 0, 100, [])
        tx = Transaction([ix], fee_payer=authority.address, recent_blockhash=BLOCKHASH)
        authority.sign_transaction(tx)
        assert tx.missing_signers() == [claimant.address]
        assert not tx.verify_signatures()

    def test_non_signer_key_rejected(self, addresses, authority, claimant):
        ix = close_claim_record_instruction(addresses, claimant.address)
        tx = Transaction([ix], fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        with pytest.raises(ValueError):
            authority.sign_transaction(tx)

    def test_tampered_instruction_breaks_signature(self, addresses, claimant):
        tx = Transaction(
            [claim_instruction(addresses, claimant.address, 0, 100, [])],
            fee_payer=claimant.address,
            recent_blockhash=BLOCKHASH,
        )
        claimant.sign_transaction(tx)
        tx.instructions[0] = claim_instruction(addresses, claimant.address, 0, 1_000_000, [])
        assert not tx.verify_signatures()

    def test_unsigned_has_no_id(self, addresses, claimant):
        tx = Transaction([close_claim_record_instruction(addresses, claimant.address)],
                         fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        with pytest.raises(ValueError):
            tx.signature_id

    def test_construction_checks(self, addresses, claimant):
        with pytest.raises(ValueError):
            Transaction([], fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        ix = close_claim_record_instruction(addresses, claimant.address)
        with pytest.raises(ValueError):
            Transaction([ix], fee_payer=b"\x00" * 19, recent_blockhash=BLOCKHASH)
        with pytest.raises(ValueError):
            Transaction([ix], fee_payer=claimant.address, recent_blockhash=b"\x00" * 31)

    def test_instruction_count_limit(self, addresses, claimant):
        ix = close_claim_record_instruction(addresses, claimant.address)
        with pytest.raises(InvalidInput) as exc:
            Transaction([ix] * (MAX_INSTRUCTIONS + 1), fee_payer=claimant.address, recent_blockhash=BLOCKHASH)
        assert isinstance(exc.value, MDPError)
        assert exc.value.field == "instructions"
        assert len(Transaction([ix] * MAX_INSTRUCTIONS, fee_payer=claimant.address,
                               recent_blockhash=BLOCKHASH).instructions) == MAX_INSTRUCTIONS


class TestWallet:
    """Wallet export and import."""

    def test_encrypted_round_trip(self):
        wallet = Wallet.generate("alice")
        exported = wallet.to_encrypted_dict("hunter2")
        assert "private_key" not in exported
        assert exported["address"] == wallet.address_hex

        restored = Wallet.from_encrypted_dict(exported, "hunter2")
        assert restored.address == wallet.address
        assert restored.name == "alice"

    def test_wrong_password(self):
        exported = Wallet.generate("alice").to_encrypted_dict("hunter2")
        assert Wallet.from_encrypted_dict(exported, "wrong") is None

    def test_plaintext_export(self):
        wallet = Wallet.generate("bob")
        data = {"name": "bob", "private_key": wallet.private_key_hex}
        assert Wallet.from_encrypted_dict(data, "").address == wallet.address


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
