"""Per-record flow: frame, check kind, extract, filter, then trace."""

import logging
from dataclasses import dataclass
from typing import Iterable

from pnmptrace.config import TraceConfig
from pnmptrace.decoder import TRACE_KIND, extract_context, trace_frame
from pnmptrace.extractor import Record
from pnmptrace.filters import build_filter_chain
from pnmptrace.framer import StreamFramer, frame_records
from pnmptrace.output import TraceWriter

logger = logging.getLogger(__name__)


@dataclass
class TraceStats:
    framed: int = 0
    displayed: int = 0
    filtered: int = 0
    dropped: int = 0
    ignored: int = 0
    oversized: int = 0

    def summary(self) -> str:
        return (f"{self.framed} records: {self.displayed} displayed, "
                f"{self.filtered} filtered, {self.dropped} dropped, "
                f"{self.ignored} other report types, "
                f"{self.oversized} oversized")


class TracePipeline:
    """Processes one record at a time; nothing is kept between records."""

    def __init__(self, config: TraceConfig, writer: TraceWriter):
        self.config = config
        self.writer = writer
        self.stats = TraceStats()
        self._accept = build_filter_chain(config.filters, config.display)

    def process(self, text: str) -> bool:
        """Trace one serialised object. Returns True if it was displayed."""
        display = self.config.display
        self.stats.framed += 1
        record = Record(text, display.field_scope)

        kind = record.get("@type", 80)
        if kind is None:
            self.stats.dropped += 1
            if display.warnings:
                logger.warning("[missing '@type']")
            return False
        if kind != TRACE_KIND:
            self.stats.ignored += 1
            logger.debug("Ignoring %s report", kind)
            return False

        ctx = extract_context(record)
        if ctx is None:
            self.stats.dropped += 1
            if display.warnings:
                logger.warning("[Mandatory field missing]")
            return False

        if not self._accept(ctx):
            self.stats.filtered += 1
            return False

        self.writer.begin_record(ctx, text)
        trace_frame(record, ctx, self.writer, display)
        self.writer.end_record()
        self.stats.displayed += 1
        return True

    def run(self, chunks: Iterable[str]) -> TraceStats:
        """Consume the chunk stream until it ends."""
        framer = StreamFramer(self.config.max_record_size)
        try:
            for text in frame_records(chunks, framer=framer):
                self.process(text)
        finally:
            self.stats.oversized = framer.oversized
        return self.stats
