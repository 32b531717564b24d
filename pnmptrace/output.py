"""Trace output — column tracking, wrapping, colour, headers, screen + capture file."""

import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

from pnmptrace.config import DisplayConfig
from pnmptrace.models import Direction, RfState, TraceContext

logger = logging.getLogger(__name__)

MARGIN = "\n    "        # left margin for L3/L4 lines
WRAP_INDENT = "    "     # extra indent for wrapped continuation lines
HEADER_INDENT = "  "     # trace indent under a separate header line
WRAP_COLUMN = len(MARGIN) - 1 + len(WRAP_INDENT)

# ANSI colour codes, by RF/Internet origin and direction
COLORS = {
    (RfState.TRUE, Direction.SENT): "\033[91m",                   # red
    (RfState.TRUE, Direction.RECEIVED): "\033[92m",               # green
    (RfState.TRUE, Direction.OTHER): "\033[93m",                  # yellow
    (RfState.FALSE, Direction.SENT): "\033[38;2;255;150;150m",    # pink
    (RfState.FALSE, Direction.RECEIVED): "\033[38;2;50;255;150m", # cyan
    (RfState.FALSE, Direction.OTHER): "\033[94m",                 # blue
}
RESET = "\033[0m"


def select_color(ctx: TraceContext) -> str:
    """Colour for a record; plain when the RF/Internet origin is unknown."""
    return COLORS.get((ctx.rf_state, ctx.direction), RESET)


def format_timestamp(epoch: int | None) -> str:
    """HH:MM:SS (UTC) of the report time, or of now if the report has none."""
    moment = datetime.now(timezone.utc)
    if epoch is not None:
        try:
            moment = datetime.fromtimestamp(epoch, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("Report time %r out of range, using now", epoch)
    return moment.strftime("%H:%M:%S")


def format_inline_header(ctx: TraceContext) -> str:
    """``REPORTER(PORT)D`` where D is the first letter of the direction."""
    dirn = ctx.dirn[0].upper() if ctx.dirn else " "
    return f"{ctx.reporter}({ctx.port}){dirn}"


def format_header_line(ctx: TraceContext) -> str:
    """``REPORTER port PORT (RF) DIRN:`` for the separate header layout."""
    parts = [f"{ctx.reporter} port {ctx.port}"]
    if ctx.is_rf:
        parts.append(" (RF)" if ctx.rf_state is RfState.TRUE else " (Non-RF)")
    if ctx.dirn:
        parts.append(f" {ctx.dirn}")
    return "".join(parts) + ":"


class TraceWriter:
    """Owns the current output column and fans writes out to both sinks.

    The screen copy is dropped in quiet mode; the capture file, when open,
    always receives every write and is flushed immediately.
    """

    def __init__(self, display: DisplayConfig, screen: TextIO | None = None,
                 capture: TextIO | None = None):
        self.display = display
        self.screen = screen if screen is not None else sys.stdout
        self.capture = capture
        self.column = 0
        self._colored = False

    @classmethod
    def open(cls, display: DisplayConfig, capture_path: str | None = None,
             screen: TextIO | None = None) -> "TraceWriter":
        """Create a writer, opening the capture file in overwrite mode.

        Raises OSError if the capture file cannot be opened.
        """
        capture = None
        if capture_path:
            capture = open(capture_path, "w", encoding="utf-8")
            logger.info("Capturing traces to file '%s'", capture_path)
        return cls(display, screen=screen, capture=capture)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def write(self, text: str) -> int:
        """Write to both sinks and advance the column. Returns len(text)."""
        if self.capture is not None:
            self.capture.write(text)
            self.capture.flush()
        if not self.display.quiet:
            self.screen.write(text)
        newline = text.rfind("\n")
        if newline >= 0:
            self.column = len(text) - newline - 1
        else:
            self.column += len(text)
        return len(text)

    def margin(self, text: str = "") -> None:
        """Start a new indented L3/L4 line."""
        self.write(MARGIN + text)

    def wrap(self) -> int:
        """Continue on a new, further indented line. Returns the new column."""
        self.write(MARGIN + WRAP_INDENT)
        return self.column

    def emit_wrapped(self, token: str) -> None:
        """Write ``token``, wrapping first if it would reach the display width."""
        if self.column > WRAP_COLUMN and self.column + len(token) >= self.display.width:
            self.wrap()
        self.write(token)

    def warn(self, message: str) -> None:
        """Inline ``[message]`` in the trace, only when warnings are enabled."""
        if self.display.warnings:
            self.write(f" [{message}]")

    def colorize(self, ctx: TraceContext) -> None:
        """Select the record colour. Goes to the file only with color_to_file."""
        if not self.display.color:
            return
        code = select_color(ctx)
        self._colored = True
        if self.display.color_to_file and self.capture is not None:
            self.capture.write(code)
            self.capture.flush()
        if not self.display.quiet:
            self.screen.write(code)

    def begin_record(self, ctx: TraceContext, raw: str) -> None:
        """Colour, raw JSON, separator, timestamp and header for one record."""
        self.colorize(ctx)
        if self.display.raw_json:
            self.write(raw + "\n")
        if self.display.blank_line:
            self.write("\n")
        if self.display.timestamp:
            self.write(format_timestamp(ctx.time) + " ")
        if self.display.header_line:
            self.write(format_header_line(ctx) + "\n" + HEADER_INDENT)
        else:
            self.write(format_inline_header(ctx) + " ")

    def end_record(self) -> None:
        self.write("\n")
        if not self.display.quiet:
            self.screen.flush()

    def close(self) -> None:
        if self._colored and not self.display.quiet:
            self.screen.write(RESET)
            self.screen.flush()
            self._colored = False
        if self.capture is not None:
            self.capture.close()
            self.capture = None
