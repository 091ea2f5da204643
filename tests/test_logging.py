"""
Logging Tests
-------------
Nothing written by a vault logger carries a credential.
"""

import json
import logging
from collections import namedtuple

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.logging import (
    JSONFormatter, OperationContext, RedactionFilter, configure_logging,
    get_logger, get_operation_id,
)
from security.redactor import PRIVATE_KEY_SENTINEL, REDACTED

HEX_KEY = "cd34" * 16


def make_record(msg, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("vault.test", logging.INFO, __file__, 1, msg, args or None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRedactionFilter:
    """Records are rewritten before any sink sees them."""

    def test_message_and_args(self):
        record = make_record("loaded %s", HEX_KEY)
        RedactionFilter().filter(record)

        assert record.getMessage() == f"loaded {PRIVATE_KEY_SENTINEL}"
        assert record.args is None

    def test_key_value_in_message(self):
        record = make_record("env VAULT_PRIVATE_KEY=hunter2 set")
        RedactionFilter().filter(record)
        assert record.getMessage() == f"env VAULT_PRIVATE_KEY={REDACTED} set"

    def test_extra_fields(self):
        record = make_record("call", details={"token": "abcdefghijkl"}, tool_args={"k": HEX_KEY})
        RedactionFilter().filter(record)

        assert record.details == {"token": "abcd...ijkl"}
        assert record.tool_args == {"k": PRIVATE_KEY_SENTINEL}

    def test_named_tuple_extra_field(self):
        Signed = namedtuple("Signed", "key signature")
        record = make_record("signed", details=Signed("tools/echo", HEX_KEY))
        RedactionFilter().filter(record)

        assert record.details == Signed("tools/echo", PRIVATE_KEY_SENTINEL)

    def test_exception_text(self):
        try:
            raise ValueError(f"bad key {HEX_KEY}")
        except ValueError:
            record = logging.LogRecord(
                "vault.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info(),
            )

        RedactionFilter().filter(record)
        assert HEX_KEY not in record.exc_text
        assert PRIVATE_KEY_SENTINEL in record.exc_text
        assert record.exc_info is None

    def test_idempotent(self):
        record = make_record(f"k={HEX_KEY}")
        f = RedactionFilter()
        f.filter(record)
        once = record.getMessage()
        f.filter(record)
        assert record.getMessage() == once


class TestGetLogger:
    """Namespaced loggers carry the filter themselves."""

    def test_prefix(self):
        assert get_logger("tools.registry").name == "vault.tools.registry"
        assert get_logger("vault.storage").name == "vault.storage"

    def test_filter_attached_once(self):
        logger = get_logger("test.once")
        get_logger("test.once")
        assert sum(isinstance(f, RedactionFilter) for f in logger.filters) == 1

    def test_captured_records_are_redacted(self, caplog):
        caplog.set_level(logging.INFO, logger="vault")
        get_logger("test.capture").info(f"using {HEX_KEY}")

        assert HEX_KEY not in caplog.text
        assert PRIVATE_KEY_SENTINEL in caplog.text


class TestConfigureLogging:
    """Installed handlers redact and write JSON lines."""

    def test_file_sink_never_sees_key(self, tmp_path):
        configure_logging(level=logging.DEBUG, log_dir=str(tmp_path), console=False)

        with OperationContext("test") as op_id:
            logging.getLogger("vault.plain").info("raw %s", HEX_KEY)
        for handler in logging.getLogger("vault").handlers:
            handler.flush()

        content = (tmp_path / "vault.log").read_text(encoding="utf-8")
        assert HEX_KEY not in content
        entry = json.loads(content.strip().splitlines()[-1])
        assert entry["message"] == f"raw {PRIVATE_KEY_SENTINEL}"
        assert entry["operation_id"] == op_id

    def test_console_traceback_never_sees_key(self, capsys):
        configure_logging(console=True, file=False)

        try:
            raise ValueError(f"signing failed for key {HEX_KEY}")
        except ValueError:
            get_logger("test.console").exception("signing failed")
        for handler in logging.getLogger("vault").handlers:
            handler.flush()

        captured = capsys.readouterr()
        output = "".join((captured.out + captured.err).split())
        assert "ValueError" in output
        assert HEX_KEY not in output
        assert PRIVATE_KEY_SENTINEL in output

    def test_file_traceback_never_sees_key(self, tmp_path):
        configure_logging(log_dir=str(tmp_path), console=False)

        try:
            raise ValueError(f"signing failed for key {HEX_KEY}")
        except ValueError:
            logging.getLogger("vault.plain").exception("signing failed")
        for handler in logging.getLogger("vault").handlers:
            handler.flush()

        entry = json.loads((tmp_path / "vault.log").read_text(encoding="utf-8").strip().splitlines()[-1])
        assert HEX_KEY not in entry["exception"]
        assert PRIVATE_KEY_SENTINEL in entry["exception"]


class TestOperationContext:
    """operation_id is scoped to the block."""

    def test_scope(self):
        assert get_operation_id() is None
        with OperationContext("refresh") as op_id:
            assert op_id.startswith("refresh_")
            assert get_operation_id() == op_id
        assert get_operation_id() is None

    def test_formatter_fields(self):
        record = make_record("hello", tool_name="echo", success=True)
        record.operation_id = "op_1"
        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["tool_name"] == "echo"
        assert entry["success"] is True
        assert entry["operation_id"] == "op_1"
