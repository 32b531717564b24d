"""Generator-based chunk reading from stdin, capture files, and followed files."""

import logging
import os
import sys
import time
from typing import Generator, TextIO

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


def read_chunks(stream: TextIO, chunk_size: int = CHUNK_SIZE) -> Generator[str, None, None]:
    """Yield text from a stream until EOF.

    Uses ``readline`` with a size limit so a live feed (one JSON report per
    line from an MQTT client) is handed on as soon as each line arrives,
    while a long unbroken stream is still read in bounded chunks.
    """
    while True:
        chunk = stream.readline(chunk_size)
        if not chunk:
            return
        yield chunk


def read_file(filepath: str, chunk_size: int = CHUNK_SIZE) -> Generator[str, None, None]:
    """Yield the contents of a previously captured file."""
    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        yield from read_chunks(f, chunk_size)


def follow_file(filepath: str, poll_interval: float = 0.5,
                chunk_size: int = CHUNK_SIZE) -> Generator[str, None, None]:
    """Yield existing content, then poll for appended data (like tail -f).

    Runs until interrupted.
    """
    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        while True:
            chunk = f.read(chunk_size)
            if chunk:
                yield chunk
            else:
                time.sleep(poll_interval)


def open_input(filepath: str | None = None, follow: bool = False) -> Generator[str, None, None]:
    """Pick the chunk source for the configured input.

    Raises FileNotFoundError up front if ``filepath`` does not exist, so the
    caller can fail before any record is processed.
    """
    if filepath is None or filepath == "-":
        if follow:
            logger.warning("--follow has no effect when reading stdin")
        if hasattr(sys.stdin, "reconfigure"):
            sys.stdin.reconfigure(errors="replace")
        return read_chunks(sys.stdin)

    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"Input file not found: {filepath}")
    if follow:
        return follow_file(filepath)
    return read_file(filepath)
