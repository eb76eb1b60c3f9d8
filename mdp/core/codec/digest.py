"""
Hex codecs for digests and addresses.

Digests (roots, proof nodes) are 32 bytes and addresses are 20 bytes; both
travel as `0x`-prefixed lowercase hex. Decoding accepts an optional
`0x`/`0X` prefix and surrounding whitespace, and rejects anything with the
wrong length or a non-hex character.
"""

from typing import Any, List

from mdp.crypto import bytes_to_hex, DIGEST_SIZE, ADDRESS_SIZE
from mdp.core.errors import ValidationError
from mdp.utils.validation import validate_hex_string, validate_bytes, MAX_PROOF_LENGTH


def _decode_hex(value: Any, size: int, label: str) -> bytes:
    valid, err = validate_hex_string(value, label, expected_bytes=size)
    if not valid:
        raise ValidationError(err, field=label)
    text = value.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    return bytes.fromhex(text)


def decode_digest(value: Any, label: str = "digest") -> bytes:
    """Parse a 32-byte hex digest."""
    return _decode_hex(value, DIGEST_SIZE, label)


def encode_digest(digest: bytes, label: str = "digest") -> str:
    """Render a 32-byte digest as 0x-prefixed hex."""
    valid, err = validate_bytes(digest, label, expected_length=DIGEST_SIZE)
    if not valid:
        raise ValidationError(err, field=label)
    return bytes_to_hex(bytes(digest))


def decode_address(value: Any, label: str = "address") -> bytes:
    """Parse a 20-byte hex address."""
    return _decode_hex(value, ADDRESS_SIZE, label)


def encode_address(address: bytes, label: str = "address") -> str:
    """Render a 20-byte address as 0x-prefixed hex."""
    valid, err = validate_bytes(address, label, expected_length=ADDRESS_SIZE)
    if not valid:
        raise ValidationError(err, field=label)
    return bytes_to_hex(bytes(address))


def decode_proof(nodes: Any, label: str = "proof") -> List[bytes]:
    """Parse a list of hex digests."""
    if not isinstance(nodes, (list, tuple)):
        raise ValidationError(f"{label} must be an array", field=label)
    if len(nodes) > MAX_PROOF_LENGTH:
        raise ValidationError(f"{label} exceeds max length {MAX_PROOF_LENGTH}", field=label)
    return [decode_digest(node, f"{label}[{i}]") for i, node in enumerate(nodes)]


def encode_proof(proof: List[bytes], label: str = "proof") -> List[str]:
    return [encode_digest(node, f"{label}[{i}]") for i, node in enumerate(proof)]
