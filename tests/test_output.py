"""Tests for pnmptrace/output.py"""

import io

import pytest

from conftest import plain_display
from pnmptrace.config import DisplayConfig
from pnmptrace.models import TraceContext
from pnmptrace.output import (
    COLORS,
    RESET,
    WRAP_COLUMN,
    TraceWriter,
    format_header_line,
    format_inline_header,
    format_timestamp,
    select_color,
)


def _ctx(**overrides):
    values = {"reporter": "G8PZT", "port": "1", "source": "M0ABC",
              "dest": "M0XYZ", "l2type": "UI"}
    values.update(overrides)
    return TraceContext(**values)


def _writer(**display_overrides):
    screen = io.StringIO()
    return TraceWriter(plain_display(**display_overrides), screen=screen), screen


# ── Formatting helpers ───────────────────────────────────────────────

class TestFormatTimestamp:
    def test_epoch_is_utc(self):
        assert format_timestamp(3723) == "01:02:03"

    def test_none_uses_now(self):
        stamp = format_timestamp(None)
        assert len(stamp) == 8
        assert stamp[2] == ":" and stamp[5] == ":"

    def test_out_of_range_uses_now(self):
        assert len(format_timestamp(10 ** 20)) == 8


class TestHeaders:
    def test_inline_with_direction(self):
        assert format_inline_header(_ctx(dirn="rcvd")) == "G8PZT(1)R"

    def test_inline_without_direction(self):
        assert format_inline_header(_ctx()) == "G8PZT(1) "

    def test_header_line_rf(self):
        ctx = _ctx(is_rf="true", dirn="sent")
        assert format_header_line(ctx) == "G8PZT port 1 (RF) sent:"

    def test_header_line_non_rf(self):
        assert format_header_line(_ctx(is_rf="false")) == "G8PZT port 1 (Non-RF):"

    def test_header_line_minimal(self):
        assert format_header_line(_ctx()) == "G8PZT port 1:"


class TestSelectColor:
    def test_rf_received(self):
        assert select_color(_ctx(is_rf="true", dirn="rcvd")) == "\033[92m"

    def test_internet_sent(self):
        assert select_color(_ctx(is_rf="false", dirn="sent")) == "\033[38;2;255;150;150m"

    def test_unknown_origin_is_plain(self):
        assert select_color(_ctx(dirn="sent")) == RESET

    def test_all_combinations_distinct(self):
        assert len(set(COLORS.values())) == len(COLORS) == 6


# ── Column tracking ──────────────────────────────────────────────────

class TestColumnTracking:
    def test_write_advances_column(self):
        out, _ = _writer()
        out.write("abc")
        out.write("de")
        assert out.column == 5

    def test_newline_resets_column(self):
        out, _ = _writer()
        out.write("abcdef\nxy")
        assert out.column == 2

    def test_margin(self):
        out, screen = _writer()
        out.write("header")
        out.margin("NTRM: G8PZT")
        assert screen.getvalue() == "header\n    NTRM: G8PZT"
        assert out.column == 4 + len("NTRM: G8PZT")

    def test_wrap_sets_column(self):
        out, screen = _writer()
        out.write("x" * 30)
        assert out.wrap() == WRAP_COLUMN == 8
        assert screen.getvalue().endswith("\n" + " " * 8)

    def test_write_returns_length(self):
        out, _ = _writer()
        assert out.write("hello") == 5


class TestEmitWrapped:
    def test_fits(self):
        out, screen = _writer(width=20)
        out.write("x" * 10)
        out.emit_wrapped(" abc")
        assert screen.getvalue() == "x" * 10 + " abc"

    def test_reaching_width_wraps(self):
        out, screen = _writer(width=20)
        out.write("x" * 16)
        out.emit_wrapped(" abc")
        assert screen.getvalue() == "x" * 16 + "\n" + " " * 8 + " abc"
        assert out.column == 12

    @pytest.mark.parametrize("token_len", [1, 5, 11, 12, 30])
    def test_never_passes_width_after_wrap_column(self, token_len):
        out, _ = _writer(width=20)
        for _ in range(10):
            before = out.column
            out.emit_wrapped("y" * token_len)
            if before > WRAP_COLUMN and before + token_len >= 20:
                assert out.column == WRAP_COLUMN + token_len

    def test_long_token_at_wrap_column_not_wrapped_again(self):
        out, screen = _writer(width=20)
        out.wrap()
        out.emit_wrapped("z" * 40)
        assert screen.getvalue() == "\n" + " " * 8 + "z" * 40


# ── Sinks ────────────────────────────────────────────────────────────

class TestSinks:
    def test_capture_file_receives_everything(self, tmp_path):
        path = tmp_path / "capture.txt"
        screen = io.StringIO()
        out = TraceWriter.open(plain_display(), str(path), screen=screen)
        out.write("hello\n")
        out.close()
        assert path.read_text(encoding="utf-8") == "hello\n"
        assert screen.getvalue() == "hello\n"

    def test_quiet_skips_screen(self, tmp_path):
        path = tmp_path / "capture.txt"
        screen = io.StringIO()
        with TraceWriter.open(plain_display(quiet=True), str(path), screen=screen) as out:
            out.write("hello")
            assert out.column == 5
        assert screen.getvalue() == ""
        assert path.read_text(encoding="utf-8") == "hello"

    def test_capture_overwritten(self, tmp_path):
        path = tmp_path / "capture.txt"
        path.write_text("old contents", encoding="utf-8")
        with TraceWriter.open(plain_display(), str(path), screen=io.StringIO()) as out:
            out.write("new")
        assert path.read_text(encoding="utf-8") == "new"

    def test_unwritable_capture_raises(self, tmp_path):
        with pytest.raises(OSError):
            TraceWriter.open(plain_display(), str(tmp_path / "missing" / "capture.txt"))

    def test_warn_only_when_enabled(self):
        out, screen = _writer()
        out.warn("missing 'l3Type'")
        assert screen.getvalue() == ""
        out, screen = _writer(warnings=True)
        out.warn("missing 'l3Type'")
        assert screen.getvalue() == " [missing 'l3Type']"


class TestColor:
    CTX = _ctx(is_rf="true", dirn="sent")

    def test_color_to_screen_not_file(self, tmp_path):
        path = tmp_path / "capture.txt"
        screen = io.StringIO()
        out = TraceWriter.open(DisplayConfig(timestamp=False, blank_line=False),
                               str(path), screen=screen)
        out.begin_record(self.CTX, "{}")
        out.end_record()
        out.close()
        assert screen.getvalue() == "\033[91mG8PZT(1)S \n" + RESET
        assert path.read_text(encoding="utf-8") == "G8PZT(1)S \n"

    def test_color_to_file(self, tmp_path):
        path = tmp_path / "capture.txt"
        display = DisplayConfig(timestamp=False, blank_line=False, color_to_file=True)
        out = TraceWriter.open(display, str(path), screen=io.StringIO())
        out.begin_record(self.CTX, "{}")
        out.close()
        assert path.read_text(encoding="utf-8").startswith("\033[91m")

    def test_color_codes_do_not_move_column(self):
        out = TraceWriter(DisplayConfig(timestamp=False, blank_line=False), screen=io.StringIO())
        out.colorize(self.CTX)
        assert out.column == 0

    def test_quiet_mode_writes_no_color(self, tmp_path):
        screen = io.StringIO()
        display = DisplayConfig(quiet=True)
        with TraceWriter.open(display, str(tmp_path / "c.txt"), screen=screen) as out:
            out.colorize(self.CTX)
        assert screen.getvalue() == ""

    def test_no_reset_without_color(self):
        out, screen = _writer()
        out.begin_record(self.CTX, "{}")
        out.close()
        assert RESET not in screen.getvalue()


class TestBeginRecord:
    def test_inline_header(self):
        out, screen = _writer()
        out.begin_record(_ctx(), "{}")
        assert screen.getvalue() == "G8PZT(1)  "
        assert out.column == 10

    def test_header_line(self):
        out, screen = _writer(header_line=True)
        out.begin_record(_ctx(is_rf="true", dirn="rcvd"), "{}")
        assert screen.getvalue() == "G8PZT port 1 (RF) rcvd:\n  "
        assert out.column == 2

    def test_raw_json_and_blank_line(self):
        out, screen = _writer(raw_json=True, blank_line=True)
        out.begin_record(_ctx(), '{"a":1}')
        assert screen.getvalue() == '{"a":1}\n\nG8PZT(1)  '

    def test_timestamp_from_report(self):
        out, screen = _writer(timestamp=True)
        out.begin_record(_ctx(time=3723), "{}")
        assert screen.getvalue() == "01:02:03 G8PZT(1)  "

    def test_end_record(self):
        out, screen = _writer()
        out.write("abc")
        out.end_record()
        assert screen.getvalue() == "abc\n"
        assert out.column == 0
