"""Layer 2 trace plus the IP, ARP and DATA payload decoders.

NetRom payloads are handed to ``pnmptrace.netrom``.
"""

import logging

from pnmptrace.config import DisplayConfig
from pnmptrace.extractor import Record
from pnmptrace.models import Protocol, TraceContext
from pnmptrace.netrom import trace_netrom
from pnmptrace.output import TraceWriter

logger = logging.getLogger(__name__)

TRACE_KIND = "L2Trace"

# (field, capacity) of the fields every L2Trace report must carry
MANDATORY_FIELDS = (
    ("reportFrom", 15),
    ("port", 15),
    ("srce", 15),
    ("dest", 15),
    ("l2Type", 7),
)

# Control field indicators shown inside <...>; present only for some frame types
CONTROL_FIELDS = (
    ("cr", 2, " {}"),
    ("pf", 2, " {}"),
    ("rseq", 3, " R{}"),
    ("tseq", 3, " S{}"),
)


def parse_epoch(value: str | None) -> int | None:
    """Integer epoch seconds from a ``time`` field, or None if unusable."""
    if not value:
        return None
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return None


def extract_context(record: Record) -> TraceContext | None:
    """Pull the per-record fields, or None if a mandatory one is missing."""
    values = []
    for name, capacity in MANDATORY_FIELDS:
        value = record.get(name, capacity)
        if value is None:
            logger.debug("Report is missing mandatory field '%s'", name)
            return None
        values.append(value)
    reporter, port, source, dest, l2type = values

    return TraceContext(
        reporter=reporter,
        port=port,
        source=source,
        dest=dest,
        l2type=l2type,
        dirn=record.get("dirn", 4) or None,
        is_rf=record.get("isRF", 4) or None,
        ptcl=record.get("ptcl", 7) or None,
        time=parse_epoch(record.get("time", 20)),
    )


def trace_data(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    # "info" is present only for UI frames, "icrc" only for I frames
    info = record.get("info", 1023)
    if info is not None:
        out.write(":")
        out.margin(info)
        return
    crc = record.get("icrc", 8)
    if crc is not None:
        out.emit_wrapped(f" CRC={crc}")


def trace_ip(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """IP header summary, e.g. ``IP: 44.1.1.1 > 44.1.1.2 iplen=28 ttl=127 id=ABA0 ptcl=1 ICMP``.

    Older node software omits the addresses, in which case nothing is shown.
    """
    if not display.trace_ip:
        return
    src = record.get("ipFrom", 15)
    dst = record.get("ipTo", 15)
    if src is None or dst is None:
        return

    out.margin(f"IP: {src} > {dst}")
    for name, capacity, template in (
        ("ipLen", 6, " iplen={}"),
        ("ipTTL", 3, " ttl={}"),
        ("ipID", 6, " id={}"),
        ("ipPtcl", 6, " ptcl={}"),
        ("ipProto", 8, " {}"),
    ):
        value = record.get(name, capacity)
        if value is not None:
            out.emit_wrapped(template.format(value))


def trace_arp(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """ARP operation, hardware and protocol addresses.

    Older node software sends no ARP fields; without ``arpOp`` nothing is shown.
    """
    if not display.trace_arp:
        return
    op = record.get("arpOp")
    if op is None:
        return

    out.margin(f"ARP {op}")
    for name, template in (("arpHwType", " hwtype={}"),
                           ("arpHwLen", " hwlen={}"),
                           ("arpPtcl", " prot={}")):
        value = record.get(name)
        if value is not None:
            out.emit_wrapped(template.format(value))

    sender = record.get("arpSndAddr")
    if sender is not None:
        out.margin(f"snd={sender}")
    for name, template in (("arpTgtAddr", " tgt={}"),
                           ("arpSndHw", " snd_hw={}"),
                           ("arpTgtHw", " tgt_hw={}")):
        value = record.get(name)
        if value is not None:
            out.emit_wrapped(template.format(value))


PROTOCOL_HANDLERS = {
    Protocol.NETROM: trace_netrom,
    Protocol.DATA: trace_data,
    Protocol.IP: trace_ip,
    Protocol.ARP: trace_arp,
}


def trace_frame(record: Record, ctx: TraceContext, out: TraceWriter,
                display: DisplayConfig) -> None:
    """Trace body: ``SRC>DST<TYPE ctrl>``, lengths, PID, then the payload layers."""
    out.write(f"{ctx.source}>{ctx.dest}<{ctx.l2type}")
    controls = []
    for name, capacity, template in CONTROL_FIELDS:
        value = record.get(name, capacity)
        if value is not None:
            controls.append(template.format(value))
    # The closing bracket stays attached to the last control field
    controls.append(controls.pop() + ">" if controls else ">")
    for token in controls:
        out.emit_wrapped(token)

    ilen = record.get("ilen", 10)
    if ilen is not None:
        out.emit_wrapped(f" ilen={ilen}")
    pid = record.get("pid", 10)
    if pid is not None:
        out.emit_wrapped(f" pid={pid}")
    if not ctx.ptcl:
        return
    out.emit_wrapped(f" {ctx.ptcl}")

    handler = PROTOCOL_HANDLERS.get(ctx.protocol)
    if handler is not None:
        handler(record, out, display)
