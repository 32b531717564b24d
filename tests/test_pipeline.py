"""End-to-end tests for pnmptrace/pipeline.py"""

import io
import logging
import re

import pytest

from conftest import make_report, plain_display
from pnmptrace.config import DisplayConfig, FilterConfig, TraceConfig
from pnmptrace.output import TraceWriter
from pnmptrace.pipeline import TracePipeline

HEADER = "G8PZT(1)  "


def _pipeline(filters=None, display=None, **config):
    screen = io.StringIO()
    cfg = TraceConfig(filters=filters or FilterConfig(),
                      display=display or plain_display(), **config)
    return TracePipeline(cfg, TraceWriter(cfg.display, screen=screen)), screen


class TestScenarios:
    def test_ui_frame_with_defaults(self):
        pipeline, screen = _pipeline(display=DisplayConfig(color=False))
        pipeline.run([make_report(time=3723)])
        assert screen.getvalue() == "\n01:02:03 " + HEADER + "M0ABC>M0XYZ<UI>\n"

    def test_ui_frame_timestamp_from_clock(self):
        pipeline, screen = _pipeline(display=DisplayConfig(color=False, blank_line=False))
        pipeline.run([make_report()])
        assert re.fullmatch(r"\d\d:\d\d:\d\d G8PZT\(1\)  M0ABC>M0XYZ<UI>\n", screen.getvalue())

    def test_ui_frames_hidden(self, run_trace):
        assert run_trace(make_report(), trace_ui=False) == ""

    def test_ip(self, run_trace):
        out = run_trace(make_report(ptcl="IP", ipFrom="44.1.1.1", ipTo="44.1.1.2", ipLen="28"))
        assert "\n    IP: 44.1.1.1 > 44.1.1.2 iplen=28\n" in out

    def test_nodes(self, run_trace):
        node = {"call": "GB7ABC", "alias": "TEST", "via": "GB7DEF", "qual": "20"}
        out = run_trace(make_report(ptcl="NET/ROM", l3Type="Routing info", type="NODES",
                                    fromAlias="KIDDER", nodes=[node]))
        assert "\n    GB7ABC:TEST via GB7DEF qlty=20\n" in out

    def test_data(self, run_trace):
        out = run_trace(make_report(ptcl="DATA", info="hello"))
        assert out.endswith("DATA:\n    hello\n")


class TestStream:
    def test_records_split_across_chunks(self):
        pipeline, screen = _pipeline()
        text = make_report() + "\n" + make_report(srce="G4ABC")
        stats = pipeline.run([text[:17], text[17:60], text[60:]])
        assert stats.displayed == 2
        assert screen.getvalue() == (HEADER + "M0ABC>M0XYZ<UI>\n"
                                     + HEADER + "G4ABC>M0XYZ<UI>\n")

    def test_one_record_per_call(self):
        pipeline, screen = _pipeline()
        assert pipeline.process(make_report()) is True
        assert pipeline.process(make_report(l2Type=None)) is False
        assert screen.getvalue().count("\n") == 1

    def test_garbage_between_records(self, run_trace):
        out = run_trace("noise " + make_report() + " }} more noise " + make_report())
        assert out.count("M0ABC>M0XYZ<UI>") == 2

    def test_oversized_record_skipped(self):
        pipeline, screen = _pipeline(max_record_size=1024)
        stats = pipeline.run([make_report(info="x" * 2000), make_report()])
        assert stats.framed == 1
        assert stats.oversized == 1
        assert stats.summary().endswith(", 1 oversized")
        assert screen.getvalue() == HEADER + "M0ABC>M0XYZ<UI>\n"


class TestRecordChecks:
    @pytest.mark.parametrize("bad", [
        make_report(time="Infinity"),
        make_report(time="-inf"),
        make_report()[:-1] + ', "time": 1e999}',
    ])
    def test_out_of_range_time_does_not_stop_stream(self, run_trace, bad):
        out = run_trace(bad, make_report(srce="G4ABC"), timestamp=True)
        lines = out.splitlines()
        assert len(lines) == 2
        assert lines[0].endswith(HEADER + "M0ABC>M0XYZ<UI>")
        assert lines[1].endswith(HEADER + "G4ABC>M0XYZ<UI>")

    def test_other_report_types_ignored(self):
        pipeline, screen = _pipeline()
        stats = pipeline.run([make_report(**{"@type": "NodeStatus"})])
        assert stats.ignored == 1
        assert screen.getvalue() == ""

    def test_missing_type_dropped(self, caplog):
        pipeline, screen = _pipeline(display=plain_display(warnings=True))
        with caplog.at_level(logging.WARNING):
            stats = pipeline.run([make_report(**{"@type": None})])
        assert stats.dropped == 1
        assert "[missing '@type']" in caplog.text
        assert screen.getvalue() == ""

    def test_missing_mandatory_dropped(self, caplog):
        pipeline, screen = _pipeline(display=plain_display(warnings=True))
        with caplog.at_level(logging.WARNING):
            stats = pipeline.run([make_report(srce=None)])
        assert stats.dropped == 1
        assert "[Mandatory field missing]" in caplog.text
        assert screen.getvalue() == ""

    def test_no_warning_unless_enabled(self, caplog):
        pipeline, _ = _pipeline()
        with caplog.at_level(logging.WARNING):
            pipeline.run([make_report(srce=None), make_report(**{"@type": None})])
        assert caplog.text == ""


class TestFiltering:
    def test_filtered_counted(self):
        pipeline, screen = _pipeline(filters=FilterConfig(port=2))
        stats = pipeline.run([make_report(), make_report(port="2")])
        assert (stats.displayed, stats.filtered) == (1, 1)
        assert screen.getvalue() == "G8PZT(2)  M0ABC>M0XYZ<UI>\n"

    def test_call_filter(self, run_trace):
        out = run_trace(make_report(), make_report(srce="G4ABC", dest="M0ABC"),
                        make_report(srce="G4ABC", dest="G4XYZ"),
                        filters=FilterConfig(call="M0ABC"))
        assert out.count("\n") == 2
        assert "G4XYZ" not in out

    def test_protocol_filter(self, run_trace):
        out = run_trace(make_report(), make_report(ptcl="DATA", info="hi"),
                        filters=FilterConfig(protocol="DATA"))
        assert out == HEADER + "M0ABC>M0XYZ<UI> DATA:\n    hi\n"


class TestStats:
    def test_summary(self):
        pipeline, _ = _pipeline(filters=FilterConfig(reporter="G8PZT"))
        stats = pipeline.run([
            make_report(),
            make_report(reportFrom="G4ABC"),
            make_report(dest=None),
            make_report(**{"@type": "Other"}),
        ])
        assert stats.summary() == (
            "4 records: 1 displayed, 1 filtered, 1 dropped, 1 other report types, "
            "0 oversized")
