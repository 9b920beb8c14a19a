"""Shared fixtures for the marlin-stream test suite."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Dict, Iterable, List, Optional, Union

import pytest

from marlin_stream.framing import WIRE_ENCODING, Frame, parse_frame

# Short acknowledgment window so timeout tests stay fast.
FAST_TIMEOUT = 0.05

# Queue entry for a read that waits out the port timeout and returns nothing.
SILENCE = object()


# ---------------------------------------------------------------------------
# Fake serial ports
# ---------------------------------------------------------------------------


class ScriptedChannel:
    """In-memory stand-in for ``serial.Serial`` with pre-queued responses.

    Each ``read_until`` pops the next queued chunk.  Strings get a ``\\n``
    appended; bytes are returned as-is so partial lines can be simulated.
    An empty queue (or :data:`SILENCE`) behaves like a quiet port.
    """

    def __init__(self, responses: Iterable[Union[str, bytes, object]] = ()) -> None:
        self.timeout: Optional[float] = 2.0
        self.writes: List[bytes] = []
        self.read_timeouts: List[Optional[float]] = []
        self.input_flushes = 0
        self.closed = False
        self._responses: deque = deque()
        self.queue(*responses)

    def queue(self, *responses: Union[str, bytes, object]) -> None:
        for item in responses:
            if isinstance(item, str):
                item = (item + "\n").encode("utf-8")
            self._responses.append(item)

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def read_until(self, expected: bytes = b"\n") -> bytes:
        self.read_timeouts.append(self.timeout)
        if not self._responses:
            time.sleep(self.timeout or 0)
            return b""
        item = self._responses.popleft()
        if item is SILENCE:
            time.sleep(self.timeout or 0)
            return b""
        return item

    def reset_input_buffer(self) -> None:
        self.input_flushes += 1

    def close(self) -> None:
        self.closed = True

    @property
    def sent_lines(self) -> List[str]:
        """Everything written, split into wire lines."""
        return b"".join(self.writes).decode(WIRE_ENCODING).splitlines()


class MarlinSimulator(ScriptedChannel):
    """Answers framed commands the way Marlin does.

    Frames with a valid checksum and the expected line number get ``ok``;
    anything else gets ``Resend: <expected>``.  ``M112`` reboots the
    simulated board, which then expects line 1 again.

    Args:
        reject: Command text mapped to the number of times it is refused
            with a resend request before being accepted.
        chatter: Lines emitted before every ``ok`` (``echo:``, temperatures).
    """

    def __init__(
        self,
        *,
        reject: Optional[Dict[str, int]] = None,
        chatter: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.expected = 1
        self.received: List[Frame] = []
        self.reboots = 0
        self._reject = dict(reject or {})
        self._chatter = list(chatter)

    def write(self, data: bytes) -> int:
        super().write(data)
        for raw in data.split(b"\n"):
            if raw:
                self._handle(raw.decode(WIRE_ENCODING))
        return len(data)

    def _handle(self, text: str) -> None:
        if text == "M112":
            self.reboots += 1
            self.expected = 1
            return
        if text == "M999":
            return

        frame = parse_frame(text)
        if frame is None or frame.line_number != self.expected:
            self.queue(f"Resend: {self.expected}")
            return
        if self._reject.get(frame.command, 0) > 0:
            self._reject[frame.command] -= 1
            self.queue(f"Resend: {self.expected}")
            return

        self.received.append(frame)
        self.expected += 1
        self.queue(*self._chatter, "ok")

    def reset_input_buffer(self) -> None:
        super().reset_input_buffer()
        self._responses.clear()

    @property
    def received_commands(self) -> List[str]:
        return [f.command for f in self.received]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def scripted() -> ScriptedChannel:
    return ScriptedChannel()


@pytest.fixture()
def simulator() -> MarlinSimulator:
    return MarlinSimulator()


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep the user's config file and environment out of every test."""
    for name in (
        "MARLIN_STREAM_FEEDRATE",
        "MARLIN_STREAM_BED_TEMP",
        "MARLIN_STREAM_HOTEND_TEMP",
        "MARLIN_STREAM_DEBUG",
        "MARLIN_STREAM_MAX_RESETS",
        "MARLIN_STREAM_CONFIG",
        "MARLIN_STREAM_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        "marlin_stream.config.get_default_config_path",
        lambda: tmp_path / "no-such-dir" / "config.yaml",
    )


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo handlers added by configure_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture()
def gcode_file(tmp_path):
    """Write a G-code file and return its path."""

    def _write(text: str, name: str = "part.gcode"):
        path = tmp_path / name
        path.write_bytes(text.encode("latin-1"))
        return path

    return _write
