"""
Unit tests for toolwire.core.logs - line classification and the event bus.
"""

import asyncio
import json
import logging

import pytest

from toolwire.core.logs import LogEventBus, classify, event_from_notification, normalize_level
from toolwire.models import LogEvent

# ============================================================================
# classify
# ============================================================================


class TestClassify:
    @pytest.mark.parametrize(
        ("line", "level"),
        [
            ("2024-01-01 10:00:00 - ERROR - disk full", "error"),
            ("2024-01-01 10:00:00 - WARNING - slow response", "warning"),
            ("2024-01-01 10:00:00 - INFO - ready", "info"),
            ("2024-01-01 10:00:00 - DEBUG - tick", "debug"),
        ],
    )
    def test_leveled_text_lines(self, line, level):
        event = classify(line)
        assert event.level == level
        assert event.message == line
        assert event.source == "stderr"

    def test_plain_line_is_info(self):
        event = classify("plain output with no markers")
        assert event.level == "info"
        assert event.message == "plain output with no markers"

    def test_level_word_without_separator_is_info(self):
        assert classify("ERROR count is zero").level == "info"

    def test_error_takes_priority_over_other_markers(self):
        line = "12:00 - INFO - retrying after ERROR"
        assert classify(line).level == "error"

    def test_warning_beats_info_and_debug(self):
        assert classify("x - DEBUG - INFO - WARNING").level == "warning"

    def test_json_log_notification(self):
        line = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": "notifications/message",
                "params": {"level": "warning", "data": "cache miss"},
            }
        )
        event = classify(line)
        assert event.level == "warning"
        assert event.message == "cache miss"

    def test_json_legacy_log_method(self):
        line = json.dumps({"method": "log", "params": {"level": "error", "data": "boom"}})
        event = classify(line)
        assert event.level == "error"
        assert event.message == "boom"

    def test_json_notification_level_wins_over_text_markers(self):
        line = json.dumps(
            {"method": "log", "params": {"level": "debug", "data": "x - ERROR - not really"}}
        )
        assert classify(line).level == "debug"

    def test_other_json_falls_back_to_text_rules(self):
        line = json.dumps({"method": "progress", "params": {"data": "half"}})
        event = classify(line)
        assert event.level == "info"
        assert event.message == line

    def test_broken_json_is_text(self):
        assert classify("{not json - ERROR - oops").level == "error"

    def test_source_is_recorded(self):
        assert classify("hello", source="notification").source == "notification"


# ============================================================================
# Notification params
# ============================================================================


class TestEventFromNotification:
    def test_missing_data(self):
        event = event_from_notification({"level": "info"})
        assert event.message == "No message data"
        assert event.source == "notification"

    def test_structured_data_serialized(self):
        event = event_from_notification({"level": "info", "data": {"rows": 3}})
        assert json.loads(event.message) == {"rows": 3}

    def test_logger_prefix(self):
        event = event_from_notification({"level": "info", "logger": "db", "data": "connected"})
        assert event.message == "[db] connected"

    @pytest.mark.parametrize(
        ("raw", "level"),
        [
            ("critical", "error"),
            ("emergency", "error"),
            ("notice", "info"),
            ("WARN", "warning"),
            ("nonsense", "info"),
            (None, "info"),
            (3, "info"),
        ],
    )
    def test_normalize_level(self, raw, level):
        assert normalize_level(raw) == level


# ============================================================================
# LogEventBus
# ============================================================================


class TestLogEventBus:
    def test_publish_reaches_every_handler(self):
        bus = LogEventBus()
        first, second = [], []
        bus.subscribe(first.append)
        bus.subscribe(second.append)

        event = LogEvent(level="info", message="ready")
        bus.publish(event)

        assert first == [event]
        assert second == [event]

    def test_failing_handler_does_not_block_others(self, caplog):
        bus = LogEventBus()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        with caplog.at_level(logging.ERROR, logger="toolwire.core.logs"):
            bus.publish(LogEvent(level="error", message="disk full"))

        assert len(received) == 1
        record = next(r for r in caplog.records if r.name == "toolwire.core.logs")
        assert record.msg == f"Log handler {broken.__qualname__} failed"
        assert record.args == ()
        assert record.log_handler == broken.__qualname__

    def test_unsubscribe(self):
        bus = LogEventBus()
        received = []
        bus.subscribe(received.append)

        assert bus.unsubscribe(received.append) is True
        assert bus.unsubscribe(received.append) is False

        bus.publish(LogEvent(level="info", message="ignored"))
        assert received == []

    async def test_queue_receives_events(self):
        bus = LogEventBus()
        queue = bus.open_queue()

        bus.publish(LogEvent(level="warning", message="slow"))

        event = await asyncio.wait_for(queue.get(), timeout=1)
        assert event.message == "slow"

    async def test_full_queue_drops_events(self):
        bus = LogEventBus()
        queue = bus.open_queue(maxsize=1)

        bus.publish(LogEvent(level="info", message="first"))
        bus.publish(LogEvent(level="info", message="second"))

        assert queue.qsize() == 1
        assert queue.get_nowait().message == "first"

    async def test_closed_queue_stops_receiving(self):
        bus = LogEventBus()
        queue = bus.open_queue()

        assert bus.close_queue(queue) is True
        bus.publish(LogEvent(level="info", message="late"))

        assert queue.empty()
        assert bus.close_queue(queue) is False

    def test_has_subscribers_and_clear(self):
        bus = LogEventBus()
        assert not bus.has_subscribers()

        bus.subscribe(lambda event: None)
        assert bus.has_subscribers()

        bus.clear()
        assert not bus.has_subscribers()
