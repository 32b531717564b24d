"""Configuration — frozen dataclasses built from defaults, YAML, env vars, and CLI args.

Precedence, lowest first: dataclass defaults, YAML config file, environment
variables, command-line flags.
"""

import argparse
import logging
import os
from dataclasses import dataclass, field, fields, replace

import jsonschema
import yaml

from pnmptrace.extractor import FIELD_SCOPES
from pnmptrace.framer import DEFAULT_MAX_RECORD_SIZE

logger = logging.getLogger(__name__)

MIN_WIDTH = 20
CONFIG_ENV_VAR = "PNMPTRACE_CONFIG"


class ConfigError(ValueError):
    """Raised for an unusable configuration file or option value."""


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class FilterConfig:
    """Record filters. None means the filter is not active."""

    reporter: str | None = None
    port: int | None = None
    source: str | None = None
    dest: str | None = None
    call: str | None = None
    protocol: str | None = None
    frame_type: str | None = None

    def active(self) -> dict:
        """Return only the filters that are set."""
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class DisplayConfig:
    trace_ui: bool = True
    trace_netrom: bool = True
    trace_l4: bool = True
    show_l3rtt: bool = True
    trace_nodes: bool = True
    trace_inp3: bool = True
    trace_ip: bool = True
    trace_arp: bool = True
    color: bool = True
    color_to_file: bool = False
    timestamp: bool = True
    blank_line: bool = True
    header_line: bool = False
    raw_json: bool = False
    quiet: bool = False
    warnings: bool = False
    width: int = 80
    field_scope: str = "top-level"


@dataclass(frozen=True)
class TraceConfig:
    filters: FilterConfig = field(default_factory=FilterConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    capture_file: str | None = None
    input_file: str | None = None
    follow: bool = False
    max_record_size: int = DEFAULT_MAX_RECORD_SIZE
    verbose: bool = False


_CALL = {"type": "string", "minLength": 1, "maxLength": 15}

CONFIG_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "filters": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "reporter": _CALL,
                "port": {"type": "integer", "minimum": 0},
                "source": _CALL,
                "dest": _CALL,
                "call": _CALL,
                "protocol": _CALL,
                "frame_type": _CALL,
            },
        },
        "display": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                **{f.name: {"type": "boolean"} for f in fields(DisplayConfig)
                   if f.name not in ("width", "field_scope")},
                "width": {"type": "integer", "minimum": MIN_WIDTH},
                "field_scope": {"enum": list(FIELD_SCOPES)},
            },
        },
        "input": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "file": {"type": "string"},
                "follow": {"type": "boolean"},
            },
        },
        "capture_file": {"type": "string"},
        "max_record_size": {"type": "integer", "minimum": 1024},
    },
}


def validate_config_data(data: dict) -> None:
    """Raise ConfigError listing every schema violation in ``data``."""
    validator = jsonschema.Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        messages = []
        for error in errors:
            where = ".".join(str(p) for p in error.path) or "<root>"
            messages.append(f"{where}: {error.message}")
        raise ConfigError("Invalid config file: " + "; ".join(messages))


def load_yaml_config(path: str | None, required: bool = False) -> dict:
    """Load and validate a YAML config file. Returns {} if there is none.

    A missing file is an error only when ``required`` (named on the
    command line); otherwise it is logged and defaults are used.
    """
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        if required:
            raise ConfigError(f"Config file not found: {path}")
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    validate_config_data(data)
    logger.info("Loaded YAML config from %s", path)
    return data


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Display toggles default to None so that only flags actually given
    override the config file and environment.
    """
    parser = argparse.ArgumentParser(
        prog="pnmptrace",
        description="Decode PNMP JSON reports into an AX25 packet trace.",
        epilog="Example: mosquitto_sub -h node-api.packet.oarc.uk -t in/udp | pnmptrace",
    )

    def off(short, long, dest, help_text):
        parser.add_argument(short, long, dest=dest, action="store_const",
                            const=False, default=None, help=help_text)

    def on(short, long, dest, help_text):
        parser.add_argument(short, long, dest=dest, action="store_const",
                            const=True, default=None, help=help_text)

    off("-3", "--no-netrom", "trace_netrom", "Don't trace NetRom layer 3 or above")
    off("-4", "--no-l4", "trace_l4", "Don't trace NetRom layer 4 or above")
    parser.add_argument("-a", "--call", help="Show all frames to or from CALLSIGN")
    off("-c", "--no-color", "color", "Don't colourise the traces")
    on("-C", "--color-to-file", "color_to_file", "Include colour codes in the capture file")
    parser.add_argument("-f", "--from", dest="source", help="Show only frames from CALLSIGN")
    on("-H", "--header-line", "header_line", "Show the header on a separate line")
    off("-i", "--no-inp3", "trace_inp3", "Don't trace contents of INP3 routing unicasts")
    on("-j", "--json", "raw_json", "Show the raw JSON before each trace")
    off("-k", "--no-l3rtt", "show_l3rtt", "Don't show the L3RTT info field")
    off("-l", "--no-blank-line", "blank_line", "Suppress blank line between traces")
    off("-n", "--no-nodes", "trace_nodes", "Don't trace contents of NODES broadcasts")
    parser.add_argument("-o", "--output", dest="capture_file", help="Capture the trace to FILE")
    parser.add_argument("-p", "--port", type=int, help="Show reports only from port PORT")
    parser.add_argument("-P", "--protocol", help="Show only frames with this L3 protocol")
    on("-q", "--quiet", "quiet", "No screen output when capturing to file")
    parser.add_argument("-r", "--reporter", help="Show reports only from node CALLSIGN")
    off("-s", "--no-timestamp", "timestamp", "Suppress the time stamp")
    parser.add_argument("-t", "--to", dest="dest", help="Show only frames addressed to CALLSIGN")
    parser.add_argument("-T", "--frame-type", help='Show only this AX25 frame type, e.g. "-T UI"')
    off("-u", "--no-ui", "trace_ui", "Don't display UI frames")
    parser.add_argument("-w", "--width", type=int, help="Display width (default 80 columns)")
    on("-W", "--warnings", "warnings", "Warn about missing or bad JSON fields")

    parser.add_argument("--config", help=f"YAML config file (or set {CONFIG_ENV_VAR})")
    parser.add_argument("--input", dest="input_file",
                        help="Read reports from FILE instead of stdin")
    parser.add_argument("--follow", action="store_true", default=None,
                        help="Keep reading the input file as it grows")
    parser.add_argument("--textual-fields", dest="field_scope", action="store_const",
                        const="textual", default=None,
                        help="Match field names anywhere in a report, not just at top level")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    return parser


def _env_display(environ) -> dict:
    overrides = {}
    if "PNMPTRACE_WIDTH" in environ:
        try:
            overrides["width"] = int(environ["PNMPTRACE_WIDTH"])
        except ValueError:
            raise ConfigError(f"PNMPTRACE_WIDTH must be an integer, "
                              f"got {environ['PNMPTRACE_WIDTH']!r}")
    if "PNMPTRACE_COLOR" in environ:
        overrides["color"] = _parse_bool(environ["PNMPTRACE_COLOR"])
    if "PNMPTRACE_WARNINGS" in environ:
        overrides["warnings"] = _parse_bool(environ["PNMPTRACE_WARNINGS"])
    return overrides


def _given(args: argparse.Namespace, names) -> dict:
    return {name: getattr(args, name) for name in names
            if getattr(args, name, None) is not None}


def load_config(argv=None, environ=None) -> TraceConfig:
    """Build TraceConfig from the YAML file, env vars, then CLI args."""
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)

    config_path = args.config or environ.get(CONFIG_ENV_VAR)
    data = load_yaml_config(config_path, required=bool(args.config))

    filter_names = [f.name for f in fields(FilterConfig)]
    filter_values = dict(data.get("filters", {}))
    filter_values.update(_given(args, filter_names))
    # Port numbers start at 1; 0 leaves the port filter off
    if filter_values.get("port") == 0:
        filter_values["port"] = None
    filters = FilterConfig(**filter_values)

    display_names = [f.name for f in fields(DisplayConfig)]
    display = replace(DisplayConfig(), **data.get("display", {}))
    display = replace(display, **_env_display(environ))
    display = replace(display, **_given(args, display_names))
    if display.width < MIN_WIDTH:
        raise ConfigError(f"Display width must be at least {MIN_WIDTH}, got {display.width}")

    input_section = data.get("input", {})
    capture_file = (args.capture_file
                    or environ.get("PNMPTRACE_CAPTURE_FILE")
                    or data.get("capture_file"))
    if display.quiet and not capture_file:
        logger.warning("Quiet mode without a capture file: nothing will be shown")

    return TraceConfig(
        filters=filters,
        display=display,
        capture_file=capture_file,
        input_file=args.input_file or input_section.get("file"),
        follow=args.follow if args.follow is not None else input_section.get("follow", False),
        max_record_size=data.get("max_record_size", DEFAULT_MAX_RECORD_SIZE),
        verbose=args.verbose,
    )
