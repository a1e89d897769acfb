"""Tests for the log broadcast hub."""

import queue
import re
import threading

import pytest

from molehill.broadcast import BroadcastHub


class TestPublish:
    def test_no_subscribers_never_blocks(self, tmp_path):
        hub = BroadcastHub(tmp_path / "log.txt", queue_size=2)
        for i in range(50):
            hub.publish(f"line {i}")
        assert hub.dropped == 0

    def test_full_subscriber_drops_without_blocking(self):
        hub = BroadcastHub(queue_size=3)
        sub = hub.subscribe()

        done = threading.Event()

        def flood():
            for i in range(10):
                hub.publish(f"line {i}")
            done.set()

        thread = threading.Thread(target=flood)
        thread.start()
        assert done.wait(timeout=5), "publish blocked on a full subscriber"
        thread.join()

        assert sub.pending() == 3
        assert hub.dropped == 7
        assert [sub.get(timeout=1) for _ in range(3)] == ["line 0", "line 1", "line 2"]

    def test_every_subscriber_receives_every_line(self):
        hub = BroadcastHub()
        first = hub.subscribe()
        second = hub.subscribe()

        hub.publish("hello")
        hub.publish("world")

        assert [first.get(timeout=1), first.get(timeout=1)] == ["hello", "world"]
        assert [second.get(timeout=1), second.get(timeout=1)] == ["hello", "world"]

    def test_get_times_out(self):
        hub = BroadcastHub()
        sub = hub.subscribe()
        with pytest.raises(queue.Empty):
            sub.get(timeout=0.05)

    def test_get_nowait(self):
        hub = BroadcastHub()
        sub = hub.subscribe()
        with pytest.raises(queue.Empty):
            sub.get_nowait()

        hub.publish("ready")
        assert sub.get_nowait() == "ready"


class TestSubscriptions:
    def test_close_unsubscribes(self):
        hub = BroadcastHub()
        sub = hub.subscribe()
        assert hub.subscriber_count == 1

        sub.close()
        hub.publish("after close")

        assert hub.subscriber_count == 0
        assert sub.pending() == 0

    def test_context_manager(self):
        hub = BroadcastHub()
        with hub.subscribe():
            assert hub.subscriber_count == 1
        assert hub.subscriber_count == 0

    def test_unsubscribe_twice_is_harmless(self):
        hub = BroadcastHub()
        sub = hub.subscribe()
        hub.unsubscribe(sub)
        hub.unsubscribe(sub)
        assert hub.subscriber_count == 0


class TestLogFile:
    def test_lines_appended_with_timestamp(self, tmp_path):
        log_file = tmp_path / "Mole" / "web-ui.log"
        hub = BroadcastHub(log_file)

        hub.publish("first")
        hub.publish("second")

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} first", lines[0])
        assert lines[1].endswith(" second")

    def test_unwritable_log_is_ignored(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        hub = BroadcastHub(blocker / "web-ui.log")
        sub = hub.subscribe()

        hub.publish("still delivered")

        assert sub.get(timeout=1) == "still delivered"

    def test_read_log(self, tmp_path):
        hub = BroadcastHub(tmp_path / "web-ui.log")
        assert hub.read_log() is None

        hub.publish("entry")
        assert "entry" in hub.read_log()

    def test_no_log_file(self):
        hub = BroadcastHub()
        hub.publish("memory only")
        assert hub.read_log() is None


class TestLog:
    def test_formats_and_publishes(self, tmp_path):
        hub = BroadcastHub(tmp_path / "web-ui.log")
        sub = hub.subscribe()

        text = hub.log("Deleted: %s (%s)", "/tmp/x", "1.0 MB")

        assert text == "Deleted: /tmp/x (1.0 MB)"
        assert sub.get(timeout=1) == text
        assert text in hub.read_log()

    def test_message_without_args_keeps_percent(self):
        hub = BroadcastHub()
        assert hub.log("100% done") == "100% done"
