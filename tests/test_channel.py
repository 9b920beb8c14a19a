"""Tests for marlin_stream.channel -- opening the serial port with mocked pyserial."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import serial

from marlin_stream.channel import (
    BOOT_DELAY_SECONDS,
    SUPPORTED_BAUD_RATES,
    open_channel,
    validate_baud_rate,
)
from marlin_stream.errors import ChannelError, ConfigurationError, UnsupportedBaudRateError


@pytest.fixture()
def mock_serial():
    """Patch ``serial.Serial`` and the boot delay; yield the Serial mock."""
    with patch("marlin_stream.channel.serial.Serial") as serial_cls, patch(
        "marlin_stream.channel.time.sleep"
    ) as sleep:
        serial_cls.sleep = sleep
        yield serial_cls


class TestValidateBaudRate:
    @pytest.mark.parametrize("baud", [115200, 250000, 500000])
    def test_supported(self, baud):
        assert validate_baud_rate(baud) == baud

    @pytest.mark.parametrize("baud", [0, 12345, 300, -115200])
    def test_unsupported(self, baud):
        with pytest.raises(UnsupportedBaudRateError, match="Unsupported baud rate"):
            validate_baud_rate(baud)

    def test_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            validate_baud_rate(1)

    def test_rates_sorted_and_unique(self):
        assert list(SUPPORTED_BAUD_RATES) == sorted(set(SUPPORTED_BAUD_RATES))


class TestOpenChannel:
    def test_opens_raw_8n1(self, mock_serial):
        channel = open_channel("/dev/ttyUSB0", 250000)

        assert channel is mock_serial.return_value
        kwargs = mock_serial.call_args.kwargs
        assert kwargs["port"] == "/dev/ttyUSB0"
        assert kwargs["baudrate"] == 250000
        assert kwargs["bytesize"] == serial.EIGHTBITS
        assert kwargs["parity"] == serial.PARITY_NONE
        assert kwargs["stopbits"] == serial.STOPBITS_ONE
        assert kwargs["xonxoff"] is False
        assert kwargs["rtscts"] is False
        assert kwargs["dsrdtr"] is False

    def test_waits_for_boot_then_flushes(self, mock_serial):
        channel = open_channel("/dev/ttyUSB0", 115200)
        mock_serial.sleep.assert_called_once_with(BOOT_DELAY_SECONDS)
        channel.reset_input_buffer.assert_called_once()

    def test_custom_boot_delay(self, mock_serial):
        open_channel("/dev/ttyUSB0", 115200, boot_delay=0.5)
        mock_serial.sleep.assert_called_once_with(0.5)

    def test_unsupported_baud_never_opens(self, mock_serial):
        with pytest.raises(UnsupportedBaudRateError):
            open_channel("/dev/ttyUSB0", 12345)
        mock_serial.assert_not_called()

    def test_empty_device(self, mock_serial):
        with pytest.raises(ValueError, match="device"):
            open_channel("", 115200)


class TestOpenChannelErrors:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("[Errno 13] could not open port /dev/ttyUSB0: Permission denied", "dialout"),
            ("[Errno 2] could not open port /dev/ttyUSB0: No such file or directory", "not found"),
            ("Cannot configure port, something went wrong. Original message: OSError(22, 'Invalid argument')", "Failed to set serial parameters"),
            ("device reports readiness to read but returned no data", "Cannot open /dev/ttyUSB0"),
        ],
    )
    def test_serial_exception_mapped(self, mock_serial, message, expected):
        mock_serial.side_effect = serial.SerialException(message)
        with pytest.raises(ChannelError, match=expected) as exc_info:
            open_channel("/dev/ttyUSB0", 115200)
        assert exc_info.value.code == "DEVICE_ERROR"
        assert isinstance(exc_info.value.cause, serial.SerialException)

    def test_os_error_mapped(self, mock_serial):
        mock_serial.side_effect = OSError("bad fd")
        with pytest.raises(ChannelError, match="bad fd"):
            open_channel("/dev/ttyUSB0", 115200)

    def test_flush_failure_closes_port(self, mock_serial):
        port = MagicMock()
        port.reset_input_buffer.side_effect = serial.SerialException("port vanished")
        mock_serial.return_value = port

        with pytest.raises(ChannelError, match="Failed to configure"):
            open_channel("/dev/ttyUSB0", 115200)
        port.close.assert_called_once()
