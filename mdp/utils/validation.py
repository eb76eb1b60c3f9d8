"""
Input Validation - Security-focused input sanitization.

Provides validation for all external inputs (allocation files, claim
packages, manifests) to prevent:
- Integer overflows (u64 index/amount)
- Invalid format attacks (bad hex, wrong-length digests)
- Resource exhaustion (oversized proofs)

Validators return (is_valid, error_message) and never raise; callers in
mdp.core.codec turn failures into ValidationError.
"""

import re
from typing import Tuple, Any, Optional

# =============================================================================
# Constants
# =============================================================================

MAX_ADDRESS_SIZE = 20
MAX_HASH_SIZE = 32
MAX_PROOF_LENGTH = 64  # Depth 64 covers any u64-indexed distribution

# Field bounds
MIN_AMOUNT = 1
MAX_AMOUNT = 2**64 - 1
MIN_INDEX = 0
MAX_INDEX = 2**64 - 1
MAX_TIMESTAMP = 2**63 - 1

HEX_PATTERN = re.compile(r"^[0-9a-fA-F]*$")
DECIMAL_PATTERN = re.compile(r"^[0-9]+$")


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a raw 20-byte address."""
    return validate_bytes(address, name, expected_length=MAX_ADDRESS_SIZE)


def validate_hash(hash_value: Any, name: str = "hash") -> Tuple[bool, str]:
    """Validate a 32-byte digest."""
    return validate_bytes(hash_value, name, expected_length=MAX_HASH_SIZE)


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass; True is not an amount
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a token amount in base units (positive u64)."""
    return validate_integer(amount, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_index(index: Any, name: str = "index") -> Tuple[bool, str]:
    """Validate an allocation index (u64)."""
    return validate_integer(index, name, MIN_INDEX, MAX_INDEX)


def validate_timestamp(value: Any, name: str = "timestamp") -> Tuple[bool, str]:
    """Validate a unix timestamp in seconds."""
    return validate_integer(value, name, 0, MAX_TIMESTAMP)


def validate_decimal_string(value: Any, name: str) -> Tuple[bool, str]:
    """Validate an unsigned decimal integer string (no sign, no exponent)."""
    if not isinstance(value, str):
        return False, f"{name} must be a decimal string, got {type(value).__name__}"
    if not value or len(value) > 20 or not DECIMAL_PATTERN.match(value):
        return False, f"{name} must be an unsigned decimal integer, got {value!r}"
    return True, ""


def validate_hex_string(value: Any, name: str, expected_bytes: Optional[int] = None) -> Tuple[bool, str]:
    """
    Validate a hex string (with or without 0x prefix).

    Args:
        value: Value to validate
        name: Field name
        expected_bytes: Expected byte length when decoded

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    hex_str = value.strip()
    if hex_str[:2] in ("0x", "0X"):
        hex_str = hex_str[2:]

    # bytes.fromhex tolerates whitespace, so check the charset explicitly
    if not HEX_PATTERN.match(hex_str):
        return False, f"{name} contains invalid hex characters"

    if len(hex_str) % 2 != 0:
        return False, f"{name} has odd length, invalid hex"

    if expected_bytes is not None:
        actual_bytes = len(hex_str) // 2
        if actual_bytes != expected_bytes:
            return False, f"{name} must be {expected_bytes} bytes, got {actual_bytes}"

    return True, ""


def validate_proof(proof: Any, name: str = "proof") -> Tuple[bool, str]:
    """Validate a decoded proof: a list of 32-byte digests."""
    if not isinstance(proof, (list, tuple)):
        return False, f"{name} must be list/tuple, got {type(proof).__name__}"
    if len(proof) > MAX_PROOF_LENGTH:
        return False, f"{name} exceeds max length {MAX_PROOF_LENGTH}, got {len(proof)}"
    for i, node in enumerate(proof):
        valid, err = validate_hash(node, f"{name}[{i}]")
        if not valid:
            return False, err
    return True, ""


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_address",
    "validate_hash",
    "validate_integer",
    "validate_amount",
    "validate_index",
    "validate_timestamp",
    "validate_decimal_string",
    "validate_hex_string",
    "validate_proof",
    "MAX_ADDRESS_SIZE",
    "MAX_HASH_SIZE",
    "MAX_PROOF_LENGTH",
    "MAX_AMOUNT",
    "MAX_INDEX",
]
