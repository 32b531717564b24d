"""Trace context and wire mnemonic enums for PNMP L2Trace reports."""

from dataclasses import dataclass
from enum import Enum

# Alternative spellings seen from different node software, mapped to the
# canonical wire value
WIRE_ALIASES = {
    "L4Type": {
        "PROT_EXT": "PROT EXT",
        "CONN_REQX": "CONN REQX",
    },
}


class WireEnum(Enum):
    """Enum whose values are the mnemonics used on the wire."""

    @classmethod
    def from_wire(cls, value: str | None):
        """Return the member for a wire mnemonic, or None if unrecognized."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            pass
        canonical = WIRE_ALIASES.get(cls.__name__, {}).get(value)
        return cls(canonical) if canonical else None


class Protocol(WireEnum):
    """Layer 3 protocol mnemonic carried in the ``ptcl`` field."""

    NETROM = "NET/ROM"
    DATA = "DATA"
    IP = "IP"
    ARP = "ARP"


class NetRomType(WireEnum):
    """NetRom frame kind from the ``l3Type`` field."""

    NETROM = "NetRom"
    ROUTING_INFO = "Routing info"
    ROUTING_POLL = "Routing poll"


class RoutingType(WireEnum):
    """Routing broadcast format from the ``type`` field."""

    NODES = "NODES"
    INP3 = "INP3"


class L4Type(WireEnum):
    """NetRom layer 4 opcode from the ``l4type`` field."""

    PROT_EXT = "PROT EXT"
    IP = "IP"
    NCMP = "NCMP"
    NDP = "NDP"
    GNET = "GNET"
    NRR_REQUEST = "NRR Request"
    NRR_REPLY = "NRR Reply"
    CONN_REQ = "CONN REQ"
    CONN_REQX = "CONN REQX"
    CONN_ACK = "CONN ACK"
    CONN_NAK = "CONN NAK"
    DREQ = "DREQ"
    DACK = "DACK"
    RSET = "RSET"
    INFO = "INFO"
    INFO_ACK = "INFO ACK"


class RfState(Enum):
    TRUE = "t"
    FALSE = "f"
    UNKNOWN = ""


class Direction(Enum):
    SENT = "s"
    RECEIVED = "r"
    OTHER = ""


@dataclass(frozen=True)
class TraceContext:
    """Top-level fields of one L2Trace record, extracted once."""

    reporter: str
    port: str
    source: str
    dest: str
    l2type: str
    dirn: str | None = None
    is_rf: str | None = None
    ptcl: str | None = None
    time: int | None = None

    @property
    def rf_state(self) -> RfState:
        if self.is_rf and self.is_rf[0] == "t":
            return RfState.TRUE
        if self.is_rf and self.is_rf[0] == "f":
            return RfState.FALSE
        return RfState.UNKNOWN

    @property
    def direction(self) -> Direction:
        if self.dirn and self.dirn[0] == "s":
            return Direction.SENT
        if self.dirn and self.dirn[0] == "r":
            return Direction.RECEIVED
        return Direction.OTHER

    @property
    def protocol(self) -> Protocol | None:
        return Protocol.from_wire(self.ptcl) if self.ptcl else None
