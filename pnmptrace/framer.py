"""Incremental framer: splits a delimiter-free character stream into JSON objects.

Only braces, quotes and the backslash escape are significant. String state
is tracked separately from brace depth, so braces inside string values
(common in payload text) do not end a record.
"""

import logging
from typing import Generator, Iterable

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORD_SIZE = 65536


class StreamFramer:
    """Character-at-a-time state machine yielding complete object spans.

    Each emitted span includes its outer braces. A record that grows past
    ``max_record_size`` characters is discarded when it closes.
    """

    def __init__(self, max_record_size: int = DEFAULT_MAX_RECORD_SIZE):
        self.max_record_size = max_record_size
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.oversized = 0
        self._buffer: list[str] = []
        self._overflow = False

    @property
    def buffered(self) -> int:
        """Characters held for the record currently being framed."""
        return len(self._buffer) if self.depth > 0 else 0

    @property
    def pending(self) -> bool:
        """True while a record has been opened but not yet closed."""
        return self.depth > 0

    def reset(self) -> None:
        """Drop any partial record and return to the idle state."""
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self._buffer = []
        self._overflow = False

    def feed(self, chunk: str) -> list[str]:
        """Consume a chunk of text and return the records it completed."""
        records = []
        for ch in chunk:
            record = self._step(ch)
            if record is not None:
                records.append(record)
        return records

    def _step(self, ch: str) -> str | None:
        if self.depth == 0:
            if ch == "{":
                self.depth = 1
                self._buffer = ["{"]
                self._overflow = False
            return None

        if ch == "}" and not self.escaped and not self.in_string:
            self.depth -= 1
            if self.depth == 0:
                return self._finish()

        self._append(ch)

        if ch == "{" and not self.escaped and not self.in_string:
            self.depth += 1
            return None

        if self.escaped:
            self.escaped = False
            return None
        if ch == "\\":
            self.escaped = True
            return None

        if ch == '"':
            self.in_string = not self.in_string
        return None

    def _append(self, ch: str) -> None:
        if self._overflow:
            return
        if len(self._buffer) >= self.max_record_size:
            self._overflow = True
            return
        self._buffer.append(ch)

    def _finish(self) -> str | None:
        overflow = self._overflow
        self._buffer.append("}")
        record = "".join(self._buffer)
        self.reset()
        if overflow:
            self.oversized += 1
            logger.debug("Discarded record larger than %d characters",
                         self.max_record_size)
            return None
        return record


def frame_records(chunks: Iterable[str],
                  max_record_size: int = DEFAULT_MAX_RECORD_SIZE,
                  framer: StreamFramer | None = None) -> Generator[str, None, None]:
    """Lazily yield complete object spans from an iterable of text chunks.

    A record still open when the input ends is dropped silently. Pass a
    ``framer`` to read its counters afterwards.
    """
    if framer is None:
        framer = StreamFramer(max_record_size)
    for chunk in chunks:
        yield from framer.feed(chunk)
    if framer.pending:
        logger.debug("Input ended inside a record, %d characters dropped",
                     framer.buffered)
