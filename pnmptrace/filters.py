"""Filter predicates for trace records, and the chain that combines them."""

from typing import Callable

from pnmptrace.config import DisplayConfig, FilterConfig
from pnmptrace.models import TraceContext

UI_FRAME = "UI"


def _same(value: str | None, wanted: str) -> bool:
    """Exact, case-insensitive match; an absent value never matches."""
    return value is not None and value.upper() == wanted.upper()


def is_displayable_ui(ctx: TraceContext, trace_ui: bool) -> bool:
    """False for UI frames when UI display is turned off."""
    return trace_ui or ctx.l2type != UI_FRAME


def filter_by_reporter(ctx: TraceContext, reporter: str) -> bool:
    return _same(ctx.reporter, reporter)


def filter_by_port(ctx: TraceContext, port: int) -> bool:
    """True if the report's port number equals ``port``."""
    try:
        return int(ctx.port) == port
    except ValueError:
        return False


def filter_by_frame_type(ctx: TraceContext, frame_type: str) -> bool:
    return _same(ctx.l2type, frame_type)


def filter_by_source(ctx: TraceContext, call: str) -> bool:
    return _same(ctx.source, call)


def filter_by_dest(ctx: TraceContext, call: str) -> bool:
    return _same(ctx.dest, call)


def filter_by_call(ctx: TraceContext, call: str) -> bool:
    """True if the frame is either from or to ``call``."""
    return _same(ctx.source, call) or _same(ctx.dest, call)


def filter_by_protocol(ctx: TraceContext, protocol: str) -> bool:
    """True if the frame carries ``protocol``; frames with no protocol never match."""
    return bool(ctx.ptcl) and _same(ctx.ptcl, protocol)


def build_filter_chain(filters: FilterConfig,
                       display: DisplayConfig | None = None) -> Callable[[TraceContext], bool]:
    """Combine the UI toggle and all active filters into a single callable.

    Checks run in a fixed order and stop at the first rejection. Unset
    filters are skipped entirely.
    """
    display = display or DisplayConfig()
    predicates = []

    if not display.trace_ui:
        predicates.append(lambda ctx: is_displayable_ui(ctx, False))

    if filters.reporter is not None:
        reporter = filters.reporter
        predicates.append(lambda ctx, r=reporter: filter_by_reporter(ctx, r))

    if filters.port is not None:
        port = filters.port
        predicates.append(lambda ctx, p=port: filter_by_port(ctx, p))

    if filters.frame_type is not None:
        frame_type = filters.frame_type
        predicates.append(lambda ctx, t=frame_type: filter_by_frame_type(ctx, t))

    if filters.source is not None:
        source = filters.source
        predicates.append(lambda ctx, c=source: filter_by_source(ctx, c))

    if filters.dest is not None:
        dest = filters.dest
        predicates.append(lambda ctx, c=dest: filter_by_dest(ctx, c))

    if filters.call is not None:
        call = filters.call
        predicates.append(lambda ctx, c=call: filter_by_call(ctx, c))

    if filters.protocol is not None:
        protocol = filters.protocol
        predicates.append(lambda ctx, p=protocol: filter_by_protocol(ctx, p))

    if not predicates:
        return lambda ctx: True

    def combined(ctx: TraceContext) -> bool:
        return all(p(ctx) for p in predicates)

    return combined
