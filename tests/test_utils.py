"""Tests for shared utility functions."""

from src.logging_context import AnalysisIdFilter, get_analysis_id, get_analysis_logger, set_analysis_id
from src.utils import format_time, normalize_text, truncate_chars


class TestFormatTime:
    def test_seconds_only(self):
        assert format_time(7) == "00:07"

    def test_minutes_and_seconds(self):
        assert format_time(75.4) == "01:15"

    def test_over_an_hour(self):
        assert format_time(3725) == "62:05"

    def test_negative_clamped(self):
        assert format_time(-3) == "00:00"


class TestNormalizeText:
    def test_collapses_whitespace(self):
        assert normalize_text("a  b\n\tc") == "a b c"

    def test_strips_ends(self):
        assert normalize_text("  hello  ") == "hello"

    def test_empty(self):
        assert normalize_text("") == ""


class TestTruncateChars:
    def test_short_unchanged(self):
        assert truncate_chars("hello", 10) == "hello"

    def test_exact_limit_unchanged(self):
        assert truncate_chars("hello", 5) == "hello"

    def test_cut_by_characters_not_bytes(self):
        assert truncate_chars("老闆您好合約已寄出", 4) == "老闆您好"


class TestAnalysisLogging:
    def test_id_attached_to_records(self, caplog):
        set_analysis_id("conv-42")
        logger = get_analysis_logger("tests.analysis")
        with caplog.at_level("INFO", logger="tests.analysis"):
            logger.info("hello")
        assert get_analysis_id() == "conv-42"
        assert caplog.records[-1].analysis_id == "conv-42"

    def test_filter_added_once(self):
        logger = get_analysis_logger("tests.analysis.once")
        get_analysis_logger("tests.analysis.once")
        assert sum(isinstance(f, AnalysisIdFilter) for f in logger.filters) == 1
