"""
Tests for the JSONL metrics writer and event helpers.
"""

import json
from unittest.mock import Mock


class TestMetricsWriter:
    def test_writes_jsonl(self, tmp_path):
        from livescribe.metrics import MetricsWriter

        path = tmp_path / "nested" / "metrics.jsonl"
        writer = MetricsWriter(path)
        writer.log("session_start", session_id="abc", window_seconds=5.0)
        writer.log("edit", session_id="abc", retain_chars=5)
        writer.shutdown()

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line["event"] for line in lines] == ["session_start", "edit"]
        assert lines[0]["session_id"] == "abc"
        assert "ts" in lines[0]

    def test_numpy_and_uuid_fields_are_serialized(self, tmp_path):
        import uuid

        import numpy as np

        from livescribe.metrics import MetricsWriter

        path = tmp_path / "metrics.jsonl"
        sid = uuid.uuid4()
        writer = MetricsWriter(path)
        writer.log("silent_tick", session_id=sid, level=np.float32(0.5))
        writer.shutdown()

        line = json.loads(path.read_text())
        assert line["session_id"] == str(sid)
        assert line["level"] == 0.5
        assert writer.written == 1

    def test_helpers_accept_no_writer(self):
        from livescribe.metrics import (
            log_conflict, log_edit, log_inference, log_session_complete,
            log_session_start, log_tick_skipped,
        )

        log_session_start(None, "abc", 5.0, 0.3)
        log_inference(None, "abc", 1, "parakeet", 120, 5000.0, "hello")
        log_tick_skipped(None, "abc", "silent_tick")
        log_conflict(None, "abc", 2, 1)
        log_edit(None, "abc", 2, 5, 6, 5, 5)
        log_session_complete(None, "abc", 1000.0, 3, "hello")

    def test_inference_text_is_truncated(self):
        from livescribe.metrics import MetricsWriter, log_inference

        metrics = Mock(spec=MetricsWriter)
        log_inference(metrics, "abc", 1, "parakeet", 120, 5000.0, "x" * 1000)

        assert len(metrics.log.call_args.kwargs["text"]) == 200

    def test_session_complete_carries_counters(self):
        from livescribe.metrics import MetricsWriter, log_session_complete

        metrics = Mock(spec=MetricsWriter)
        log_session_complete(metrics, "abc", 1000.0, 3, "hello", dropped_ticks=2, conflicts=1)

        kwargs = metrics.log.call_args.kwargs
        assert metrics.log.call_args.args[0] == "session_complete"
        assert kwargs["dropped_ticks"] == 2
        assert kwargs["conflicts"] == 1
