"""
Distributor configuration for MDP.

Defines the program namespace, request limits, timeouts and the
claim-time defaults shared by the lifecycle and batch submitter.

Values can be overridden from a `.env`-style file or the process
environment using `MDP_`-prefixed keys, e.g.:

    MDP_PROGRAM_ID=0x4d44503a6469737472696275746f723a76310000
    MDP_MAX_INSTRUCTIONS_PER_REQUEST=8
    MDP_CONFIRM_TIMEOUT=30
    MDP_VERIFY_PROOFS_LOCALLY=true
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

from mdp.crypto import hex_to_bytes, bytes_to_hex
from mdp.core.transaction import MAX_INSTRUCTIONS


# Default program namespace (20 bytes)
DEFAULT_PROGRAM_ID = b"MDP:distributor:v1".ljust(20, b"\x00")

# Placeholder governance program namespace (20 bytes)
DEFAULT_GOVERNANCE_PROGRAM_ID = b"MDP:governance:v3".ljust(20, b"\x00")

ENV_PREFIX = "MDP_"


@dataclass
class DistributorConfig:
    """Distributor client configuration"""

    # Program namespace used for address derivation
    program_id: bytes = DEFAULT_PROGRAM_ID

    # Request limits
    max_instructions_per_request: int = 8
    confirm_timeout: float = 30.0  # Seconds to wait for a confirmation

    # Claim behaviour
    verify_proofs_locally: bool = True  # Re-check proofs before building a claim
    simulate_before_submit: bool = True

    # Storage deposit locked in each claim record, returned on close
    claim_record_rent: int = 1_500

    # Governance deposit defaults
    governance_program_id: bytes = DEFAULT_GOVERNANCE_PROGRAM_ID
    governance_program_version: int = 3

    # Logging
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    def __post_init__(self):
        if len(self.program_id) != 20:
            raise ValueError(f"program_id must be 20 bytes, got {len(self.program_id)}")
        if len(self.governance_program_id) != 20:
            raise ValueError("governance_program_id must be 20 bytes")
        if not 1 <= self.max_instructions_per_request <= MAX_INSTRUCTIONS:
            raise ValueError(f"max_instructions_per_request must be between 1 and {MAX_INSTRUCTIONS}")
        if self.confirm_timeout <= 0:
            raise ValueError("confirm_timeout must be positive")

    def to_dict(self) -> dict:
        return {
            "program_id": bytes_to_hex(self.program_id),
            "max_instructions_per_request": self.max_instructions_per_request,
            "confirm_timeout": self.confirm_timeout,
            "verify_proofs_locally": self.verify_proofs_locally,
            "simulate_before_submit": self.simulate_before_submit,
            "claim_record_rent": self.claim_record_rent,
            "governance_program_id": bytes_to_hex(self.governance_program_id),
            "governance_program_version": self.governance_program_version,
            "log_dir": str(self.log_dir),
            "log_to_file": self.log_to_file,
        }


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return _parse_bool(raw)
    if isinstance(default, bytes):
        return hex_to_bytes(raw.strip())
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, Path):
        return Path(raw).expanduser()
    return raw


def load_config(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> DistributorConfig:
    """
    Load configuration from a dotenv file and the environment.

    Precedence: environment > file > defaults.

    Args:
        config_path: Optional path to a `.env`-style file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        DistributorConfig instance
    """
    values: Dict[str, Optional[str]] = {}
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        values.update(dotenv_values(path))

    env = os.environ if environ is None else environ
    values.update({k: v for k, v in env.items() if k.startswith(ENV_PREFIX)})

    defaults = DistributorConfig()
    overrides = {}
    for f in fields(DistributorConfig):
        raw = values.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw == "":
            continue
        try:
            overrides[f.name] = _coerce(raw, getattr(defaults, f.name))
        except ValueError as e:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {e}") from e

    return DistributorConfig(**overrides)
