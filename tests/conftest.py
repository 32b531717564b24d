import io
import json

import pytest

from pnmptrace.config import DisplayConfig, FilterConfig, TraceConfig
from pnmptrace.output import TraceWriter
from pnmptrace.pipeline import TracePipeline

BASE_REPORT = {
    "@type": "L2Trace",
    "reportFrom": "G8PZT",
    "port": "1",
    "srce": "M0ABC",
    "dest": "M0XYZ",
    "l2Type": "UI",
}


def make_report(**fields) -> str:
    """Serialise an L2Trace report; keyword fields override/extend the base."""
    report = dict(BASE_REPORT)
    for key, value in fields.items():
        if value is None:
            report.pop(key, None)
        else:
            report[key] = value
    return json.dumps(report)


def plain_display(**overrides) -> DisplayConfig:
    """Display settings that make output easy to compare: no colour, stamp or blank line."""
    settings = {"color": False, "timestamp": False, "blank_line": False}
    settings.update(overrides)
    return DisplayConfig(**settings)


@pytest.fixture
def sample_report():
    return make_report()


@pytest.fixture
def screen():
    return io.StringIO()


@pytest.fixture
def run_trace():
    """Run serialised reports through a pipeline and return the screen text."""

    def _run(*texts, filters=None, **display_overrides):
        screen = io.StringIO()
        config = TraceConfig(filters=filters or FilterConfig(),
                             display=plain_display(**display_overrides))
        writer = TraceWriter(config.display, screen=screen)
        TracePipeline(config, writer).run(texts)
        return screen.getvalue()

    return _run
