from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hls_downloader.errors import (
    CryptoError,
    ErrorAnalyzer,
    IncompletePlanError,
    IntegrityError,
    KeyFetchError,
    NetworkError,
)


@pytest.mark.parametrize(
    "error, category",
    [
        (NetworkError("x", status=403), "forbidden"),
        (NetworkError("x", status=401), "forbidden"),
        (NetworkError("x", status=404), "not_found"),
        (NetworkError("x", status=500), "network"),
        (NetworkError("timed out"), "network"),
        (IntegrityError("short"), "integrity"),
        (CryptoError("bad padding"), "crypto"),
        (KeyFetchError("no key"), "key"),
        (RuntimeError("boom"), "unknown"),
    ],
)
def test_categorize(error, category):
    assert ErrorAnalyzer.categorize(error) == category


def test_records_ordinals_once_and_caps_samples():
    analyzer = ErrorAnalyzer()
    for attempt in range(8):
        analyzer.categorize_and_record(3, NetworkError(f"reset {attempt}"))

    pattern = analyzer.patterns["network"]
    assert analyzer.total_errors == 8
    assert pattern.ordinals == [3]
    assert len(pattern.sample_messages) == 5


def test_recommendations_follow_recorded_categories():
    analyzer = ErrorAnalyzer()
    assert analyzer.get_recommendations()[0].startswith("No errors")

    analyzer.categorize_and_record(1, NetworkError("x", status=403))
    analyzer.categorize_and_record(2, IntegrityError("short"))

    recommendations = analyzer.get_recommendations()
    assert len(recommendations) == 2
    assert "--cookie" in recommendations[0]
    assert "resume" in recommendations[1]


def test_error_log_is_appended(tmp_path):
    log_path = tmp_path / "errors.log"
    analyzer = ErrorAnalyzer()
    analyzer.set_error_log_path(str(log_path))

    analyzer.categorize_and_record(4, CryptoError("bad padding"))
    analyzer.categorize_and_record(None, KeyFetchError("no key"))

    lines = log_path.read_text().splitlines()
    assert "[crypto] segment 4: bad padding" in lines[0]
    assert "[key] run: no key" in lines[1]


def test_print_summary_lists_failed_ordinals(capsys):
    analyzer = ErrorAnalyzer()
    analyzer.categorize_and_record(9, NetworkError("x", status=404))

    analyzer.print_summary()

    err = capsys.readouterr().err
    assert "Not Found: 1 segments" in err
    assert "Ordinals: 9" in err


def test_incomplete_plan_error_reports_counts():
    error = IncompletePlanError(2, 3)

    assert str(error) == "2 of 3 segments downloaded"
    assert error.kind == "incomplete"
