"""
Unit tests for the hex and allocation codecs.

Tests cover:
1. Digest and address hex decoding (length, charset, prefix)
2. Proof arrays
3. Allocation list parsing (separators, comments, index defaults)
4. Allocation list errors (line numbers, duplicates, amounts)
5. Token amount scaling
6. Validation helpers
"""

import pytest

from mdp.core.codec import (
    decode_address,
    decode_digest,
    decode_proof,
    encode_address,
    encode_digest,
    encode_proof,
    format_token_amount,
    load_allocations,
    parse_allocations,
    serialize_allocations,
    to_base_units,
)
from mdp.core.errors import ValidationError
from mdp.utils.validation import (
    validate_amount,
    validate_hex_string,
    validate_index,
    validate_integer,
    validate_proof,
    MAX_AMOUNT,
)


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20


class TestDigestCodec:
    """32-byte digests and 20-byte addresses."""

    def test_decode_digest(self):
        assert decode_digest("0x" + "ab" * 32) == bytes([0xAB]) * 32

    def test_prefix_optional_and_whitespace_trimmed(self):
        assert decode_digest("  " + "00" * 31 + "ff\n") == bytes(31) + b"\xff"
        assert decode_digest("0X" + "11" * 32) == bytes([0x11]) * 32

    def test_wrong_length_rejected(self):
        with pytest.raises(ValidationError) as exc:
            decode_digest("0x" + "ab" * 31, "root")
        assert exc.value.field == "root"
        with pytest.raises(ValidationError):
            decode_digest("0x" + "ab" * 33)

    def test_bad_charset_rejected(self):
        with pytest.raises(ValidationError):
            decode_digest("0x" + "zz" * 32)
        with pytest.raises(ValidationError):
            decode_digest("0x" + "ab" * 31 + "a b")

    def test_odd_length_rejected(self):
        with pytest.raises(ValidationError):
            decode_digest("0x" + "a" * 63)

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError):
            decode_digest(1234)

    def test_encode_digest(self):
        assert encode_digest(bytes(32)) == "0x" + "00" * 32
        with pytest.raises(ValidationError):
            encode_digest(bytes(20))

    def test_address_round_trip(self):
        assert encode_address(decode_address(ALICE)) == ALICE
        with pytest.raises(ValidationError):
            decode_address("0x" + "a1" * 32)

    def test_proof(self):
        nodes = ["0x" + "01" * 32, "0x" + "02" * 32]
        decoded = decode_proof(nodes)
        assert decoded == [bytes([1]) * 32, bytes([2]) * 32]
        assert encode_proof(decoded) == nodes

    def test_proof_errors_name_the_node(self):
        with pytest.raises(ValidationError) as exc:
            decode_proof(["0x" + "01" * 32, "0x12"])
        assert exc.value.field == "proof[1]"
        with pytest.raises(ValidationError):
            decode_proof("0x" + "01" * 32)
        with pytest.raises(ValidationError):
            decode_proof(["0x" + "01" * 32] * 65)


class TestAllocationParsing:
    """Line-oriented allocation lists."""

    def test_comma_and_whitespace_separators(self):
        text = f"{ALICE},100\n{BOB} 250\n{CAROL}\t75"
        allocations = parse_allocations(text)
        assert [a.amount for a in allocations] == [100, 250, 75]
        assert allocations[1].recipient == bytes([0xB0]) * 20

    def test_comments_and_blank_lines_skipped(self):
        text = f"# header\n\n{ALICE},100\n   \n# trailing\n{BOB},250\n"
        allocations = parse_allocations(text)
        assert len(allocations) == 2

    def test_index_defaults_to_record_position(self):
        text = f"# comment\n{ALICE},100\n\n{BOB},250"
        assert [a.index for a in parse_allocations(text)] == [0, 1]

    def test_explicit_index(self):
        allocations = parse_allocations(f"{ALICE},100,7\n{BOB},250,3")
        assert [a.index for a in allocations] == [7, 3]

    def test_accepts_lines_iterable(self):
        allocations = parse_allocations([f"{ALICE}, 100", f"{BOB} , 250"])
        assert len(allocations) == 2

    def test_decimals(self):
        allocations = parse_allocations(f"{ALICE},1.5\n{BOB},2", decimals=6)
        assert [a.amount for a in allocations] == [1_500_000, 2_000_000]

    def test_serialize(self):
        allocations = parse_allocations(f"{ALICE},100,4")
        assert serialize_allocations(allocations) == f"{ALICE},100,4\n"
        assert parse_allocations(serialize_allocations(allocations)) == allocations

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "allocations.csv"
        path.write_text(f"{ALICE},100\n{BOB},250\n")
        assert len(load_allocations(path)) == 2


class TestAllocationErrors:
    """Malformed lists fail with the offending line."""

    def test_zero_amount(self):
        with pytest.raises(ValidationError) as exc:
            parse_allocations(f"{ALICE},100\n{BOB},0")
        assert "line 2" in str(exc.value)
        assert exc.value.field == "amount"

    def test_negative_amount(self):
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE},-5")

    def test_amount_overflow(self):
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE},{MAX_AMOUNT + 1}")

    def test_fractional_amount_without_decimals(self):
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE},1.5")

    def test_too_many_decimal_places(self):
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE},1.1234567", decimals=6)

    def test_malformed_address(self):
        with pytest.raises(ValidationError) as exc:
            parse_allocations(f"{ALICE},100\n\n0x1234,100")
        assert "line 3" in str(exc.value)
        assert exc.value.field == "recipient"

    def test_wrong_field_count(self):
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE}")
        with pytest.raises(ValidationError):
            parse_allocations(f"{ALICE},1,2,3")

    def test_duplicate_index(self):
        with pytest.raises(ValidationError) as exc:
            parse_allocations(f"{ALICE},100,1\n{BOB},250,1")
        assert "duplicate index 1" in str(exc.value)
        assert "line 1" in str(exc.value)

    def test_duplicate_recipient(self):
        with pytest.raises(ValidationError) as exc:
            parse_allocations(f"{ALICE},100\n{ALICE},250")
        assert exc.value.field == "recipient"

    def test_file_not_utf8(self, tmp_path):
        path = tmp_path / "latin1.csv"
        path.write_bytes(f"{ALICE},100\n".encode() + b"# caf\xe9\n")
        with pytest.raises(ValidationError) as exc:
            load_allocations(path)
        assert "UTF-8" in str(exc.value)
        assert exc.value.field == "allocations"


class TestTokenAmounts:
    """Decimal scaling helpers."""

    def test_to_base_units(self):
        assert to_base_units("1.5", 6) == 1_500_000
        assert to_base_units("0.000001", 6) == 1
        assert to_base_units("42", 0) == 42

    def test_to_base_units_rejects(self):
        with pytest.raises(ValidationError):
            to_base_units("1e5", 6)
        with pytest.raises(ValidationError):
            to_base_units("1.0", 19)

    def test_format_token_amount(self):
        assert format_token_amount(1_500_000, 6) == "1.5"
        assert format_token_amount(2_000_000, 6) == "2"
        assert format_token_amount(1, 6) == "0.000001"
        assert format_token_amount(7, 0) == "7"


class TestValidationHelpers:
    """(is_valid, error) validators."""

    def test_integer_rejects_bool(self):
        valid, err = validate_integer(True, "amount")
        assert not valid
        assert "int" in err

    def test_amount_bounds(self):
        assert validate_amount(1)[0]
        assert validate_amount(MAX_AMOUNT)[0]
        assert not validate_amount(0)[0]
        assert not validate_amount(MAX_AMOUNT + 1)[0]

    def test_index_allows_zero(self):
        assert validate_index(0)[0]
        assert not validate_index(-1)[0]

    def test_hex_string(self):
        assert validate_hex_string("0xabcd", "x", expected_bytes=2)[0]
        assert not validate_hex_string("0xabcd", "x", expected_bytes=3)[0]
        assert not validate_hex_string("0xab cd", "x")[0]

    def test_proof(self):
        assert validate_proof([bytes(32)])[0]
        assert not validate_proof([bytes(31)])[0]
        assert not validate_proof([bytes(32)] * 65)[0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
