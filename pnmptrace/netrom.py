"""NetRom (PID 0xCF) decoding: layer 3 header, L3RTT, layer 4, NODES and INP3.

Layer 4 payloads are shown only for INFO frames; for other opcodes just the
header fields are traced.
"""

import logging
from datetime import datetime

from pnmptrace.config import DisplayConfig
from pnmptrace.extractor import Record
from pnmptrace.models import L4Type, NetRomType, RoutingType
from pnmptrace.output import TraceWriter

logger = logging.getLogger(__name__)

L3RTT_DEST = "L3RTT"
CONN_REQ_INDENT = "\n          "

# Originator fields after the user in a connect request: (name, capacity, template)
CONN_REQ_FIELDS = (
    ("srcNode", 9, " at {}"),
    ("service", 8, " svc={}"),
    ("l4t1", 8, " t/o={}"),
    ("bpqSpy", 8, " bpqSpy={}"),
)

# INP3 capability flags, shown when the field is "true"
INP3_FLAGS = (
    ("isNode", "NODE"),
    ("isBBS", "BBS"),
    ("isPMS", "PMS"),
    ("isXRChat", "XRCHAT"),
    ("isRTChat", "RTCHAT"),
    ("isRMS", "RMS"),
    ("isDXClus", "DXCLUS"),
)

# Epoch values at or below this are treated as unset
MIN_INP3_EPOCH = 18000


def trace_netrom(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """Dispatch a NET/ROM frame on its ``l3Type``."""
    if not display.trace_netrom:
        return
    value = record.get("l3Type")
    if value is None:
        out.warn("missing 'l3Type'")
        return
    kind = NetRomType.from_wire(value)
    if kind is None:
        out.warn(f"unknown 'l3Type': '{value}'")
        return
    NETROM_HANDLERS[kind](record, out, display)


# ── Layer 3 ──────────────────────────────────────────────────────────

def trace_netrom_l3(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """Routing header (source, destination, TTL), then L3RTT or layer 4."""
    src = record.get("l3src", 10)
    if src is not None:
        out.margin(f"NTRM: {src}")
    dst = record.get("l3dst", 10)
    if dst is not None:
        out.emit_wrapped(f" to {dst}")
    ttl = record.get("ttl", 8)
    if ttl is not None:
        out.emit_wrapped(f" ttl={ttl}")

    if dst == L3RTT_DEST:
        trace_l3rtt(record, out, display)
    else:
        trace_netrom_l4(record, out, display)


def trace_l3rtt(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """L3RTT probe.

    It carries an L4 INFO header with circuit and sequence numbers all zero,
    but belongs to layer 3. The payload (up to ~236 characters) is word
    wrapped at the display width.
    """
    paylen = record.get("paylen", 8)
    if paylen is not None:
        out.emit_wrapped(f" ilen={paylen}")
    if not display.show_l3rtt:
        return
    payload = record.get("payload", 511)
    if payload is None:
        return
    out.write(":")
    out.margin()
    for i, word in enumerate(payload.split(" ")):
        out.emit_wrapped(word if i == 0 else " " + word)


def trace_routing_info(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    value = record.get("type", 15)
    if value is None:
        out.warn("missing 'type'")
        return
    kind = RoutingType.from_wire(value)
    if kind is None:
        out.warn(f"unknown 'type' '{value}'")
        return
    ROUTING_HANDLERS[kind](record, out, display)


def trace_routing_poll(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """Routing polls carry nothing worth tracing yet."""


# ── Routing broadcasts ───────────────────────────────────────────────

def trace_nodes(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """NODES broadcast: originating alias, then one line per route.

    Each route reads like ``GB7ABC:TEST via GB7DEF qlty=20``.
    """
    if not display.trace_nodes:
        out.write(" NODES Broadcast")
        return

    alias = record.get("fromAlias", 6)
    if alias is None:
        out.warn("missing 'fromAlias'")
        out.margin("NODES Broadcast:")
    else:
        out.margin(f"NODES Broadcast from {alias}:")

    if record.array("nodes", after="fromAlias") is None:
        out.warn("missing 'nodes' array")
        return

    for node in record.elements("nodes", after="fromAlias"):
        out.margin(node.get("call", 9) or "")
        node_alias = node.get("alias", 6)
        if node_alias is not None:
            out.emit_wrapped(f":{node_alias}")
        via = node.get("via", 9)
        if via is not None:
            out.emit_wrapped(f" via {via}")
        quality = node.get("qual", 3)
        if quality is not None:
            out.emit_wrapped(f" qlty={quality}")


def format_inp3_time(value: str) -> str | None:
    """ISO-8601 timestamps pass through; Unix epochs become local ``DD/MM HH:MM``."""
    if "T" in value:
        return value
    try:
        epoch = int(float(value))
    except (ValueError, OverflowError):
        return None
    if epoch <= MIN_INP3_EPOCH:
        return None
    try:
        return datetime.fromtimestamp(epoch).strftime("%d/%m %H:%M")
    except (OverflowError, OSError, ValueError):
        return None


def trace_inp3_node(node: Record, out: TraceWriter) -> None:
    """One INP3 route.

    Minimum form is ``GB7BDH    hp=2   tt=3``; optional alias, position,
    software, version, capabilities and timestamp follow, wrapping at the
    display width.
    """
    call = node.get("call", 9)
    out.margin(f"{call or '':<9}")

    hops = node.get("hops", 2)
    if hops is not None:
        out.emit_wrapped(f"  hp={hops:<2}")
    trip_time = node.get("tt", 5)
    if trip_time is not None:
        out.emit_wrapped(f"  tt={trip_time:<5}")

    alias = node.get("alias", 6)
    if alias is not None:
        out.emit_wrapped(f"  Alias={alias:<6}")
    for name, template in (("latitude", " {}"),
                           ("longitude", " {}"),
                           ("software", " S/W={}")):
        value = node.get(name, 20)
        if value is not None:
            out.emit_wrapped(template.format(value))
    version = node.get("version", 10)
    if version is not None:
        out.emit_wrapped(f" v{version}")

    for name, label in INP3_FLAGS:
        if node.get(name, 5) == "true":
            out.emit_wrapped(f" {label}")

    stamp = node.get("timestamp", 40)
    if stamp is not None:
        shown = format_inp3_time(stamp)
        if shown is not None:
            out.emit_wrapped(f" {shown}")

    tz_mins = node.get("tzMins", 8)
    if tz_mins is not None:
        out.emit_wrapped(f" tz={tz_mins}")


def trace_inp3(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    if not display.trace_inp3:
        out.write(" INP3")
        return
    out.margin("INP3 Routing Unicast:")
    if record.array("nodes") is None:
        out.warn("missing 'nodes' array")
        return
    for node in record.elements("nodes"):
        trace_inp3_node(node, out)


# ── Layer 4 ──────────────────────────────────────────────────────────

def _trace_tag(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    return False


def _trace_prot_ext(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    family = record.get("l4Family", 80)
    if family is not None:
        out.emit_wrapped(f" pf={family}")
    proto = record.get("l4Proto", 80)
    if proto is not None:
        out.emit_wrapped(f" prot={proto}")
    return False


def _trace_record_route(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    nrr_id = record.get("nrrId", 80)
    if nrr_id is not None:
        out.emit_wrapped(f" id={nrr_id}")
    route = record.get("nrrRoute", 2047)
    if route is not None:
        out.margin(f"Route: {route}")
    return False


def _trace_conn_req(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    window = record.get("window", 8)
    if window is not None:
        out.emit_wrapped(f" w={window}")
    user = record.get("srcUser", 9)
    if user is None:
        return False
    out.write(CONN_REQ_INDENT + user)
    for name, capacity, template in CONN_REQ_FIELDS:
        value = record.get(name, capacity)
        if value is not None:
            out.emit_wrapped(template.format(value))
    return False


def _trace_conn_ack(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    window = record.get("window", 8)
    if window is not None:
        out.emit_wrapped(f" w={window}")
    my_cct = record.get("fromCct", 8)
    if my_cct is not None:
        out.emit_wrapped(f" myCct={my_cct}")
    return False


def _trace_reset(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    out.emit_wrapped(f" <{kind.value}>")
    my_cct = record.get("fromCct", 8)
    if my_cct is not None:
        out.emit_wrapped(f" myCct={my_cct}")
    return False


def _trace_info(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    tag = f" <{kind.value}"
    tx_seq = record.get("txSeq", 8)
    if tx_seq is not None:
        tag += f" S{tx_seq}"
    rx_seq = record.get("rxSeq", 8)
    if rx_seq is not None:
        tag += f" R{rx_seq}"
    out.emit_wrapped(tag + ">")
    paylen = record.get("paylen", 8)
    if paylen is not None:
        out.emit_wrapped(f" ilen={paylen}")
    payload = record.get("payload", 2047)
    if payload is not None:
        out.write(":")
        out.margin(payload)
    return True


def _trace_info_ack(record: Record, out: TraceWriter, kind: L4Type) -> bool:
    tag = f" <{kind.value}"
    rx_seq = record.get("rxSeq", 8)
    if rx_seq is not None:
        tag += f" R{rx_seq}"
    out.emit_wrapped(tag + ">")
    return True


def _trace_unrecognized(record: Record, out: TraceWriter, kind: None) -> bool:
    return True


# Handlers return True when the choke/nak/more flags should follow
L4_HANDLERS = {
    L4Type.PROT_EXT: _trace_prot_ext,
    L4Type.IP: _trace_tag,
    L4Type.NCMP: _trace_tag,
    L4Type.NDP: _trace_tag,
    L4Type.GNET: _trace_tag,
    L4Type.NRR_REQUEST: _trace_record_route,
    L4Type.NRR_REPLY: _trace_record_route,
    L4Type.CONN_REQ: _trace_conn_req,
    L4Type.CONN_REQX: _trace_conn_req,
    L4Type.CONN_ACK: _trace_conn_ack,
    L4Type.CONN_NAK: _trace_tag,
    L4Type.DREQ: _trace_tag,
    L4Type.DACK: _trace_tag,
    L4Type.RSET: _trace_reset,
    L4Type.INFO: _trace_info,
    L4Type.INFO_ACK: _trace_info_ack,
}

# Opcodes that are not part of a circuit, so no circuit number is shown
CONNECTIONLESS = frozenset({
    L4Type.PROT_EXT,
    L4Type.IP,
    L4Type.NCMP,
    L4Type.NDP,
    L4Type.GNET,
    L4Type.NRR_REQUEST,
    L4Type.NRR_REPLY,
})

L4_FLAGS = (
    ("chokeFlag", "CHOKE"),
    ("nakFlag", "NAK"),
    ("moreFlag", "MORE"),
)


def trace_netrom_l4(record: Record, out: TraceWriter, display: DisplayConfig) -> None:
    """Layer 4 header: circuit number, opcode fields, then flag markers."""
    if not display.trace_l4:
        return
    value = record.get("l4type", 15)
    if value is None:
        out.warn("missing l4type")
        return
    if value == "unknown":
        out.warn("unknown l4type")
        return

    kind = L4Type.from_wire(value)
    if kind is None:
        logger.debug("Unrecognized l4type %r", value)
    if kind not in CONNECTIONLESS:
        cct = record.get("toCct", 8)
        if cct is not None:
            out.emit_wrapped(f" cct={cct}")

    handler = L4_HANDLERS.get(kind, _trace_unrecognized)
    if not handler(record, out, kind):
        return

    for name, label in L4_FLAGS:
        # Presence alone sets the marker
        if record.get(name, 8) is not None:
            out.emit_wrapped(f" <{label}>")


NETROM_HANDLERS = {
    NetRomType.NETROM: trace_netrom_l3,
    NetRomType.ROUTING_INFO: trace_routing_info,
    NetRomType.ROUTING_POLL: trace_routing_poll,
}

ROUTING_HANDLERS = {
    RoutingType.NODES: trace_nodes,
    RoutingType.INP3: trace_inp3,
}
