"""
Tests for WindowScheduler: gating, backpressure and stop semantics.
"""

import threading
import time

import numpy as np
import pytest

from conftest import SAMPLE_RATE, ScriptedProvider, loud, silence


def make_scheduler(provider, audio=None, timeout=2.0, **kwargs):
    from livescribe.audio import AudioRing
    from livescribe.inference import InferenceAdapter
    from livescribe.scheduler import WindowScheduler
    from livescribe.silence import SilenceGate

    ring = AudioRing(capacity_seconds=30.0, sample_rate=SAMPLE_RATE)
    if audio is not None:
        ring.write(audio)

    received = []
    scheduler = WindowScheduler(
        ring,
        InferenceAdapter(provider, timeout=timeout),
        SilenceGate(threshold=0.003, probe_seconds=0.3),
        on_transcript=received.append,
        **kwargs,
    )
    return scheduler, ring, received


class TestWindowScheduler:
    def test_silent_tick_skips_inference(self):
        provider = ScriptedProvider(["ghost words"])
        scheduler, _, received = make_scheduler(provider, silence(1.0))

        assert scheduler.tick() is None

        assert provider.calls == []
        assert received == []
        assert scheduler.silent_ticks == 1
        assert scheduler.inference_calls == 0

    def test_tick_delivers_transcript(self):
        provider = ScriptedProvider(["hello"])
        scheduler, _, received = make_scheduler(provider, loud(2.0))

        transcript = scheduler.tick()

        assert transcript.text == "hello"
        assert received == [transcript]
        assert transcript.end_time == pytest.approx(2.0)
        assert scheduler.inference_calls == 1

    def test_window_is_clamped(self):
        provider = ScriptedProvider(["x"])
        scheduler, ring, _ = make_scheduler(
            provider, loud(0.5), window_seconds=5.0, min_window_seconds=1.0
        )

        assert scheduler.window_duration() == pytest.approx(1.0)
        scheduler.tick()
        assert len(provider.calls[0]) == SAMPLE_RATE  # padded up to the minimum

        ring.write(loud(9.5))
        assert scheduler.window_duration() == pytest.approx(5.0)
        scheduler.tick()
        assert len(provider.calls[1]) == 5 * SAMPLE_RATE

    def test_failure_is_a_noop_tick(self):
        provider = ScriptedProvider(error=RuntimeError("boom"))
        scheduler, _, received = make_scheduler(provider, loud(1.0))

        assert scheduler.tick() is None
        assert received == []
        assert scheduler.failed_ticks == 1

        # Session continues
        provider.error = None
        provider.responses = ["recovered"]
        assert scheduler.tick().text == "recovered"

    def test_timeout_is_a_noop_tick(self):
        provider = ScriptedProvider(["slow"])
        provider.release = threading.Event()
        scheduler, _, received = make_scheduler(provider, loud(1.0), timeout=0.05)

        try:
            assert scheduler.tick() is None
            assert scheduler.failed_ticks == 1
            assert received == []
        finally:
            provider.release.set()

    def test_tick_while_busy_is_dropped(self):
        provider = ScriptedProvider(["hello"])
        provider.release = threading.Event()
        scheduler, _, received = make_scheduler(provider, loud(1.0))

        worker = threading.Thread(target=scheduler.tick)
        worker.start()
        assert provider.started.wait(2.0)

        assert scheduler.tick() is None
        assert scheduler.dropped_ticks == 1

        provider.release.set()
        worker.join(timeout=2.0)

        assert len(provider.calls) == 1
        assert scheduler.max_in_flight == 1
        assert len(received) == 1

    def test_result_after_stop_is_kept_as_late(self):
        provider = ScriptedProvider(["last words"])
        provider.release = threading.Event()
        scheduler, _, received = make_scheduler(provider, loud(1.0))

        worker = threading.Thread(target=scheduler.tick)
        worker.start()
        assert provider.started.wait(2.0)

        scheduler.stop()
        provider.release.set()
        worker.join(timeout=2.0)

        assert received == []
        assert scheduler.late_transcript.text == "last words"

    def test_slow_inference_self_throttles(self):
        """Inference at 3x the tick period: one call in flight, missed ticks dropped."""
        tick = 0.05
        provider = ScriptedProvider(["hello"], delay=3 * tick)
        scheduler, ring, received = make_scheduler(
            provider, loud(2.0), tick_seconds=tick, window_seconds=1.0, min_window_seconds=0.5
        )

        scheduler.start()
        time.sleep(1.0)
        scheduler.stop(timeout=2.0)

        assert scheduler.running is False
        assert scheduler.max_in_flight == 1
        assert scheduler.inference_calls >= 2
        assert scheduler.dropped_ticks >= scheduler.inference_calls
        # Every processed window covers far more than one tick of audio
        assert all(len(audio) >= int(0.5 * SAMPLE_RATE) for audio in provider.calls)

    def test_loop_ticks_on_cadence(self):
        provider = ScriptedProvider(["hi"])
        scheduler, _, received = make_scheduler(provider, loud(2.0), tick_seconds=0.02)

        scheduler.start()
        time.sleep(0.3)
        scheduler.stop(timeout=2.0)

        assert scheduler.ticks >= 3
        assert len(received) >= 3

    def test_stats(self):
        provider = ScriptedProvider(["hi"])
        scheduler, _, _ = make_scheduler(provider, loud(1.0))
        scheduler.tick()

        stats = scheduler.stats()

        assert stats["ticks"] == 1
        assert stats["inference_calls"] == 1
        assert set(stats) == {
            "ticks", "silent_ticks", "dropped_ticks", "failed_ticks",
            "inference_calls", "max_in_flight",
        }

    def test_window_must_exceed_tick(self):
        with pytest.raises(ValueError):
            make_scheduler(ScriptedProvider(), tick_seconds=1.0, window_seconds=1.0)

    def test_skipped_ticks_are_logged(self):
        from unittest.mock import Mock
        from livescribe.metrics import MetricsWriter

        metrics = Mock(spec=MetricsWriter)
        provider = ScriptedProvider(error=RuntimeError("boom"))
        scheduler, ring, _ = make_scheduler(
            provider, silence(1.0), metrics=metrics, session_id="abc"
        )

        scheduler.tick()
        ring.write(loud(0.5))
        scheduler.tick()

        events = [c.args[0] for c in metrics.log.call_args_list]
        assert events == ["silent_tick", "inference_failure"]
        assert all(c.kwargs["session_id"] == "abc" for c in metrics.log.call_args_list)
