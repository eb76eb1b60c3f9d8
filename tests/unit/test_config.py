"""
Unit tests for configuration loading and logging setup.
"""

import logging
from pathlib import Path

import pytest

from mdp.core.config import (
    DEFAULT_PROGRAM_ID,
    DistributorConfig,
    load_config,
)
from mdp.core.transaction import MAX_INSTRUCTIONS
from mdp.crypto import bytes_to_hex
from mdp.utils.logger import MDPLogger, get_logger, setup_logging


OTHER_PROGRAM = bytes([0x42]) * 20


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / "mdp.env"
    path.write_text(
        "MDP_MAX_INSTRUCTIONS_PER_REQUEST=4\n"
        "MDP_CONFIRM_TIMEOUT=12.5\n"
        "MDP_VERIFY_PROOFS_LOCALLY=false\n"
        f"MDP_PROGRAM_ID={bytes_to_hex(OTHER_PROGRAM)}\n"
    )
    return path


class TestDefaults:
    """Defaults with no file and an empty environment."""

    def test_defaults(self):
        config = load_config(environ={})
        assert config.program_id == DEFAULT_PROGRAM_ID
        assert config.max_instructions_per_request == 8
        assert config.verify_proofs_locally is True

    def test_to_dict_is_printable(self):
        data = DistributorConfig().to_dict()
        assert data["program_id"].startswith("0x")
        assert data["log_dir"] == "logs"


class TestPrecedence:
    """environment > file > defaults."""

    def test_file_values(self, env_file):
        config = load_config(str(env_file), environ={})
        assert config.max_instructions_per_request == 4
        assert config.confirm_timeout == 12.5
        assert config.verify_proofs_locally is False
        assert config.program_id == OTHER_PROGRAM

    def test_environment_overrides_file(self, env_file):
        config = load_config(str(env_file), environ={"MDP_MAX_INSTRUCTIONS_PER_REQUEST": "2"})
        assert config.max_instructions_per_request == 2
        assert config.confirm_timeout == 12.5

    def test_unprefixed_keys_ignored(self):
        config = load_config(environ={"MAX_INSTRUCTIONS_PER_REQUEST": "2"})
        assert config.max_instructions_per_request == 8

    def test_empty_value_keeps_default(self):
        config = load_config(environ={"MDP_CONFIRM_TIMEOUT": ""})
        assert config.confirm_timeout == 30.0

    def test_path_values(self):
        config = load_config(environ={"MDP_LOG_DIR": "/tmp/mdp-logs"})
        assert config.log_dir == Path("/tmp/mdp-logs")


class TestErrors:
    """Bad files and values are reported, never ignored."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.env"), environ={})

    def test_invalid_bool(self):
        with pytest.raises(ValueError) as exc:
            load_config(environ={"MDP_VERIFY_PROOFS_LOCALLY": "maybe"})
        assert "MDP_VERIFY_PROOFS_LOCALLY" in str(exc.value)

    def test_invalid_int(self):
        with pytest.raises(ValueError):
            load_config(environ={"MDP_MAX_INSTRUCTIONS_PER_REQUEST": "eight"})

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            load_config(environ={"MDP_MAX_INSTRUCTIONS_PER_REQUEST": "0"})
        with pytest.raises(ValueError):
            DistributorConfig(program_id=b"\x00" * 19)

    def test_request_limit_capped_by_transaction_size(self):
        with pytest.raises(ValueError) as exc:
            load_config(environ={"MDP_MAX_INSTRUCTIONS_PER_REQUEST": "300"})
        assert str(MAX_INSTRUCTIONS) in str(exc.value)
        assert DistributorConfig(max_instructions_per_request=MAX_INSTRUCTIONS).max_instructions_per_request == 255


class TestLogger:
    """Subsystem loggers hang off the mdp root logger."""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        yield
        MDPLogger.reset()
        MDPLogger.setup()

    def test_logger_namespace(self):
        logger = get_logger("lifecycle")
        assert logger.name == "mdp.lifecycle"
        assert isinstance(logger, logging.Logger)

    def test_root_has_handler(self):
        get_logger("batch")
        assert logging.getLogger("mdp").handlers

    def test_explicit_setup_replaces_defaults(self, tmp_path):
        logger = get_logger("batch")
        log_file = setup_logging(level=logging.DEBUG, log_dir=str(tmp_path / "logs"), log_to_file=True)

        assert log_file == tmp_path / "logs" / "mdp.log"
        assert logging.getLogger("mdp").level == logging.DEBUG
        logger.debug("chunked 3 instructions")
        for handler in logging.getLogger("mdp").handlers:
            handler.flush()
        assert "chunked 3 instructions" in log_file.read_text()

    def test_setup_twice_does_not_stack_handlers(self, tmp_path):
        setup_logging(level=logging.DEBUG, log_dir=str(tmp_path), log_to_file=True)
        setup_logging(level=logging.WARNING)
        root = logging.getLogger("mdp")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert MDPLogger.log_file() is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
