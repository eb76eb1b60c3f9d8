"""
Allocation list parsing.

Input is line oriented, one allocation per record:

    # comment
    0x70997970c51812dc3a010c7d01b50e0d17dc79c8,1000
    0xbd26367c4b23a6d3713a1e1a50b2d67e8748cb98 250
    0xf39fd6e51aad88f6f4ce6ab8827279cffb922660,75,7

Fields are `recipient,amount[,index]`, separated by a comma or by
whitespace. Blank lines and lines starting with `#` are ignored. When the
index is omitted it defaults to the record's position (0-based, counting
records only).

Amounts are base units unless `decimals` is given, in which case they may
be written as token amounts ("1.5") and are scaled by 10**decimals.
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from mdp.core.errors import ValidationError
from mdp.core.codec.digest import decode_address
from mdp.core.merkle.tree import Allocation
from mdp.crypto import bytes_to_hex
from mdp.utils.validation import (
    validate_amount,
    validate_index,
    validate_integer,
    DECIMAL_PATTERN,
)
from mdp.utils.logger import get_logger

logger = get_logger("codec.allocations")

FIELD_SPLIT = re.compile(r"\s*,\s*|\s+")
TOKEN_AMOUNT_PATTERN = re.compile(r"^([0-9]+)(?:\.([0-9]+))?$")
MAX_DECIMALS = 18


# =============================================================================
# Amount Helpers
# =============================================================================


def to_base_units(text: str, decimals: int) -> int:
    """
    Convert a token amount string to base units.

    to_base_units("1.5", 6) == 1_500_000

    Raises:
        ValidationError: malformed number or more fractional digits than
            `decimals`
    """
    valid, err = validate_integer(decimals, "decimals", 0, MAX_DECIMALS)
    if not valid:
        raise ValidationError(err, field="decimals")

    match = TOKEN_AMOUNT_PATTERN.match(text.strip())
    if not match:
        raise ValidationError(f"Invalid token amount: {text!r}", field="amount")

    whole, fraction = match.group(1), match.group(2) or ""
    if len(fraction) > decimals:
        raise ValidationError(
            f"Amount {text!r} has more than {decimals} decimal places",
            field="amount",
        )
    return int(whole) * 10**decimals + int(fraction.ljust(decimals, "0") or "0")


def format_token_amount(raw_amount: int, decimals: int) -> str:
    """
    Render base units as a token amount, trimming trailing zeros.

    format_token_amount(1_500_000, 6) == "1.5"
    """
    if decimals <= 0:
        return str(raw_amount)
    precision = 10**decimals
    whole, fraction = divmod(raw_amount, precision)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{fraction_text}" if fraction_text else str(whole)


def _parse_amount(text: str, decimals: Optional[int], where: str) -> int:
    if decimals is None:
        if not DECIMAL_PATTERN.match(text):
            raise ValidationError(f"{where}: amount must be a whole number of base units, got {text!r}", field="amount")
        amount = int(text)
    else:
        try:
            amount = to_base_units(text, decimals)
        except ValidationError as e:
            raise ValidationError(f"{where}: {e.message}", field="amount") from e

    valid, err = validate_amount(amount)
    if not valid:
        raise ValidationError(f"{where}: {err}", field="amount")
    return amount


# =============================================================================
# Parsing
# =============================================================================


def parse_allocations(
    text: Union[str, Iterable[str]],
    decimals: Optional[int] = None,
) -> List[Allocation]:
    """
    Parse an allocation list.

    Args:
        text: File contents, or an iterable of lines
        decimals: Scale token amounts by 10**decimals (None = base units)

    Returns:
        Validated allocations in record order

    Raises:
        ValidationError: malformed line, bad address, non-positive amount,
            duplicate recipient or duplicate index (message names the line)
    """
    lines = text.splitlines() if isinstance(text, str) else list(text)

    allocations: List[Allocation] = []
    seen_recipients = {}
    seen_indices = {}

    for line_no, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        where = f"line {line_no}"
        fields = FIELD_SPLIT.split(line)
        if len(fields) not in (2, 3):
            raise ValidationError(
                f"{where}: expected 'recipient,amount[,index]', got {line!r}",
                field="line",
            )

        try:
            recipient = decode_address(fields[0], "recipient")
        except ValidationError as e:
            raise ValidationError(f"{where}: {e.message}", field="recipient") from e

        amount = _parse_amount(fields[1], decimals, where)

        if len(fields) == 3:
            if not DECIMAL_PATTERN.match(fields[2]):
                raise ValidationError(f"{where}: index must be an unsigned integer, got {fields[2]!r}", field="index")
            index = int(fields[2])
        else:
            index = len(allocations)
        valid, err = validate_index(index)
        if not valid:
            raise ValidationError(f"{where}: {err}", field="index")

        if recipient in seen_recipients:
            raise ValidationError(
                f"{where}: duplicate recipient {bytes_to_hex(recipient)} "
                f"(first seen on line {seen_recipients[recipient]})",
                field="recipient",
            )
        if index in seen_indices:
            raise ValidationError(
                f"{where}: duplicate index {index} (first seen on line {seen_indices[index]})",
                field="index",
            )
        seen_recipients[recipient] = line_no
        seen_indices[index] = line_no

        allocations.append(Allocation(recipient=recipient, index=index, amount=amount))

    logger.debug(f"Parsed {len(allocations)} allocations")
    return allocations


def load_allocations(path: Union[str, Path], decimals: Optional[int] = None) -> List[Allocation]:
    """Read and parse an allocation file."""
    try:
        text = Path(path).read_bytes().decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationError(f"{path}: not valid UTF-8 at byte {e.start}", field="allocations") from e
    return parse_allocations(text, decimals=decimals)


def serialize_allocations(allocations: Iterable[Allocation]) -> str:
    """Write allocations in `recipient,amount,index` form (base units)."""
    return "".join(
        f"{bytes_to_hex(a.recipient)},{a.amount},{a.index}\n" for a in allocations
    )
