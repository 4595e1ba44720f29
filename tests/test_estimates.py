# tests/test_estimates.py
import datetime

from src.assessment_engine.core.estimates import compute_estimated_seconds, count_words
from src.assessment_engine.core.utils import convert_to_local_time, round_half_up, week_start


def test_explicit_estimates_win():
    assert compute_estimated_seconds("VIDEO", estimated_seconds=42, duration_sec=900) == 42
    assert compute_estimated_seconds("PDF", estimated_minutes=3) == 180


def test_video_uses_duration_with_a_floor():
    assert compute_estimated_seconds("VIDEO", duration_sec=900) == 900
    assert compute_estimated_seconds("VIDEO", duration_sec=30) == 60
    assert compute_estimated_seconds("VIDEO") == 300


def test_html_reading_time_rounds_up_to_whole_minutes():
    html = "<p>" + " ".join(["word"] * 450) + "</p>"
    assert count_words(html) == 450
    assert compute_estimated_seconds("HTML", content_html=html) == 180
    assert compute_estimated_seconds("HTML", content_html="<p></p>") == 60


def test_other_kinds_get_the_default():
    assert compute_estimated_seconds("LINK") == 120
    assert compute_estimated_seconds("PDF") == 120


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(87.5) == 88
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_week_start_is_monday():
    assert week_start(datetime.datetime(2026, 3, 5, 9, 30)) == datetime.date(2026, 3, 2)
    assert week_start(datetime.datetime(2026, 3, 2, 0, 0)) == datetime.date(2026, 3, 2)


def test_local_time_rendering():
    utc = datetime.datetime(2026, 3, 2, 12, 0)
    assert convert_to_local_time(utc, "Asia/Shanghai").hour == 20
    assert convert_to_local_time(utc).hour == 12
    assert convert_to_local_time(None) is None
