"""Tests for marlin_stream.exit_codes."""

from __future__ import annotations

import pytest

from marlin_stream import errors
from marlin_stream.exit_codes import ERROR_CODE_MAP, FATAL, SUCCESS, exit_code_for


class TestExitCodes:
    def test_values(self):
        assert SUCCESS == 0
        assert FATAL == 1

    @pytest.mark.parametrize("code", sorted(ERROR_CODE_MAP))
    def test_every_code_is_fatal(self, code):
        assert exit_code_for(code) == FATAL

    def test_unknown_code_is_fatal(self):
        assert exit_code_for("SOMETHING_NEW") == FATAL

    @pytest.mark.parametrize(
        "exc_type",
        [
            errors.StreamError,
            errors.ConfigurationError,
            errors.UnsupportedBaudRateError,
            errors.SourceError,
            errors.ChannelError,
            errors.ResetLimitError,
            errors.AckTimeoutError,
        ],
    )
    def test_every_error_code_mapped(self, exc_type):
        assert exc_type.code in ERROR_CODE_MAP


class TestErrors:
    def test_cause_kept(self):
        cause = OSError("boom")
        exc = errors.ChannelError("Cannot open", cause=cause)
        assert exc.cause is cause
        assert str(exc) == "Cannot open"

    def test_hierarchy(self):
        assert issubclass(errors.UnsupportedBaudRateError, errors.ConfigurationError)
        assert issubclass(errors.AckTimeoutError, errors.StreamError)

    def test_timeout_message(self):
        exc = errors.AckTimeoutError(12, 10.0)
        assert str(exc) == "Timeout (10s) waiting for acknowledgment of line N12."
        assert exc.line_number == 12
        assert exc.timeout == 10.0
