"""Test perf timing output controlled by IMAGER_PERF."""

import re
from unittest.mock import patch

import imager
from imager import ImageHandle, PerfTimer, ResizeMode


def test_perf_timer_logs_when_enabled(monkeypatch, caplog):
    """Verify PerfTimer emits a PERF line when perf logging is on."""
    monkeypatch.setattr(imager, "PERF_LOGGING", True)

    with caplog.at_level("INFO"):
        with PerfTimer("decode", "sample.jpg"):
            pass

    assert len(caplog.records) == 1
    assert re.fullmatch(r"PERF decode: \d+\.\d{3}ms \[-\] sample\.jpg", caplog.records[0].message)


def test_perf_timer_silent_when_disabled(monkeypatch, caplog):
    """Verify nothing is logged when perf logging is off."""
    monkeypatch.setattr(imager, "PERF_LOGGING", False)

    with caplog.at_level("INFO"):
        with PerfTimer("decode"):
            pass

    assert caplog.records == []


def test_perf_timer_does_not_swallow_errors(monkeypatch, caplog):
    """Verify the timer logs and lets exceptions propagate."""
    monkeypatch.setattr(imager, "PERF_LOGGING", True)

    with caplog.at_level("INFO"):
        try:
            with PerfTimer("encode"):
                raise RuntimeError("boom")
        except RuntimeError as exc:
            assert str(exc) == "boom"

    assert "PERF encode" in caplog.text


def test_handle_operations_are_timed(monkeypatch, red_image, tmp_path):
    """Verify transforms, encode and save each report a timing."""
    monkeypatch.setattr(imager, "PERF_LOGGING", True)

    with patch.object(imager, "perf_log") as perf:
        handle = ImageHandle(red_image, "png")
        handle.resize(10, 10, ResizeMode.SCALE).crop(5, 5, 0, 0).rotate(90)
        handle.to_bytes()
        handle.save(tmp_path / "out.png")

    reported = [(call.args[0], call.args[2]) for call in perf.call_args_list]
    assert reported == [
        ("resize", (10, 10)),
        ("crop", (5, 5)),
        ("rotate", (5, 5)),
        ("encode", (5, 5)),
        ("save", (5, 5)),
    ]


def test_decode_is_timed(jpeg_bytes):
    """Verify decoding reports a timing."""
    with patch.object(imager, "perf_log") as perf:
        ImageHandle.from_bytes(jpeg_bytes)

    perf.assert_called_once()
    assert perf.call_args.args[0] == "decode"
    assert perf.call_args.args[2] == (100, 100)


def test_perf_log_reports_result_size(monkeypatch, caplog, red_image):
    """Verify the logged line carries the size the operation produced."""
    monkeypatch.setattr(imager, "PERF_LOGGING", True)

    with caplog.at_level("INFO"):
        ImageHandle.from_image(red_image).resize(30, 20, ResizeMode.STRETCH)

    assert "[30x20] stretch 30x20" in caplog.text
