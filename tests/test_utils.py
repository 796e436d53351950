"""
Telegent — Cost Tracker & Logging Setup Tests
"""
import logging
import os
import sys
import tempfile

import pytest
from rich.logging import RichHandler

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from telegent.utils.cost_tracker import CostTracker
from telegent.utils.logging import console, print_turn_summary, setup_logging


def test_cost_tracker_breakdown():
    tracker = CostTracker()
    tracker.record("decision", "claude-sonnet-4-5-20250929", input_tokens=1_000_000, output_tokens=0)
    tracker.record("answer", "claude-sonnet-4-5-20250929", input_tokens=0, output_tokens=1_000_000)
    tracker.record("answer", "some-unknown-model", input_tokens=500, output_tokens=500)

    summary = tracker.get_summary()
    assert summary["total_calls"] == 3
    assert summary["total_cost_usd"] == pytest.approx(18.0)
    assert summary["breakdown"]["decision"]["cost_usd"] == pytest.approx(3.0)
    assert summary["breakdown"]["answer"]["call_count"] == 2
    assert summary["breakdown"]["answer"]["cost_usd"] == pytest.approx(15.0)

    tracker.reset()
    assert tracker.get_call_count() == 0
    assert tracker.get_session_cost() == 0
    print("  PASS: cost_tracker_breakdown")


@pytest.fixture
def clean_package_logger():
    logger = logging.getLogger("telegent")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        if handler not in saved[0]:
            handler.close()
    logger.handlers, logger.level, logger.propagate = saved[0], saved[1], saved[2]


def test_setup_logging_is_idempotent(clean_package_logger):
    log_dir = tempfile.mkdtemp()
    log_file = os.path.join(log_dir, "telegent.log")
    setup_logging(level="WARNING", log_file=log_file)
    logger = setup_logging(level="WARNING", log_file=log_file)
    rich_handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
    file_handlers = [h for h in logger.handlers if type(h) is logging.FileHandler]
    assert len(rich_handlers) == 1
    assert len(file_handlers) == 1
    assert logger.level == logging.WARNING

    setup_logging(debug=True)
    assert logger.level == logging.DEBUG

    logging.getLogger("telegent.core.test").warning("written to file")
    file_handlers[0].flush()
    with open(log_file, encoding="utf-8") as f:
        assert "written to file" in f.read()
    print("  PASS: setup_logging_is_idempotent")


def test_print_turn_summary_renders():
    with console.capture() as capture:
        print_turn_summary({
            "conversation_id": 5,
            "states": ["received", "context_loaded", "action_decided", "responded", "persisted"],
            "command": "@capability:logger stats",
            "capability_result": "3 message(s) logged",
            "facts_added": ["likes tea"],
            "elapsed_ms": 12.5,
        })
        print_turn_summary({})
    output = capture.get()
    assert "@capability:logger stats" in output
    assert "likes tea" in output
    print("  PASS: print_turn_summary_renders")


def test_print_turn_summary_escapes_markup():
    with console.capture() as capture:
        print_turn_summary({
            "conversation_id": "[bold]5",
            "states": ["received", "failed"],
            "command": "@capability:echo say [red]",
            "capability_result": "closing [/green] tag",
            "facts_added": ["uses [/green] tags"],
            "error": "ValueError: bad [/red] input",
        })
    output = capture.get()
    assert "uses [/green] tags" in output
    assert "closing [/green] tag" in output
    assert "bad [/red] input" in output
    print("  PASS: print_turn_summary_escapes_markup")
