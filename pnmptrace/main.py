#!/usr/bin/env python3
"""pnmptrace — decode PNMP JSON reports from stdin or a file into an AX25 packet trace.

    mosquitto_sub -h node-api.packet.oarc.uk -t in/udp | pnmptrace
    pnmptrace --input capture.json -H -n
"""

import logging
import os
import sys

from pnmptrace.config import ConfigError, TraceConfig, load_config
from pnmptrace.output import TraceWriter
from pnmptrace.pipeline import TracePipeline
from pnmptrace.reader import open_input

# Internal logging to stderr (separate from the trace on stdout)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [PNMPTRACE] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def log_settings(config: TraceConfig) -> None:
    """Report active filters and disabled decoders at startup."""
    for name, value in config.filters.active().items():
        logger.info("Filter %s=%s", name, value)
    display = config.display
    if not display.trace_ui:
        logger.info("Not showing UI frames")
    if not display.trace_netrom:
        logger.info("Not decoding NetRom layer 3 or above")
    if not display.trace_l4:
        logger.info("Not decoding NetRom layer 4 or above")
    if not display.trace_nodes:
        logger.info("Not decoding NODES broadcasts")
    if not display.trace_inp3:
        logger.info("Not decoding INP3 unicasts")
    if not display.show_l3rtt:
        logger.info("Not showing L3RTT frame contents")
    if display.raw_json:
        logger.info("Including JSON data")
    if not display.timestamp:
        logger.info("Time stamp disabled")
    if display.field_scope == "textual":
        logger.info("Matching field names anywhere in a report")


def main(argv=None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    log_settings(config)

    try:
        chunks = open_input(config.input_file, config.follow)
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1

    try:
        writer = TraceWriter.open(config.display, config.capture_file)
    except OSError as e:
        logger.error("Can't open capture file '%s': %s", config.capture_file, e)
        return 1

    with writer:
        pipeline = TracePipeline(config, writer)
        try:
            pipeline.run(chunks)
        except KeyboardInterrupt:
            pass
        except BrokenPipeError:
            # Reader went away; point stdout at devnull so closing does not fail again
            devnull = os.open(os.devnull, os.O_WRONLY)
            os.dup2(devnull, sys.stdout.fileno())
        finally:
            logger.info("%s", pipeline.stats.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
