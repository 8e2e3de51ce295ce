"""Tests for the reconcile work queue."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from controller.exceptions import ApplyError, DefinitionNotFoundError
from controller.reconciler import ReconcileResult
from controller.replication.engine import ApplyOutcome
from controller.types import ObjectKey
from controller.work_queue import ReconcileQueue

KEY = ObjectKey("default", "mirror")


class RecordingReconciler:
    """Reconciler double that records calls and replays scripted outcomes."""

    def __init__(self, outcomes=None):
        self.calls = []
        self.outcomes = list(outcomes or [])

    def reconcile(self, key, log=None):
        self.calls.append(key)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ReconcileResult(key=key)


class TestBackoff:
    """Test per-key backoff arithmetic."""

    def test_exponential_and_capped(self):
        queue = ReconcileQueue(RecordingReconciler(), backoff_base=1, backoff_max=5)

        delays = [queue.backoff(KEY) for _ in range(5)]

        assert delays == [1, 2, 4, 5, 5]
        assert queue.failures(KEY) == 5

    def test_forget_resets(self):
        queue = ReconcileQueue(RecordingReconciler(), backoff_base=1, backoff_max=5)
        queue.backoff(KEY)

        queue.forget(KEY)

        assert queue.failures(KEY) == 0
        assert queue.backoff(KEY) == 1


class TestProcessing:
    """Test worker behaviour."""

    @pytest.mark.asyncio
    async def test_processes_key(self):
        reconciler = RecordingReconciler()
        queue = ReconcileQueue(reconciler)
        await queue.start()

        queue.add(KEY)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert reconciler.calls == [KEY]

    @pytest.mark.asyncio
    async def test_duplicate_adds_collapse(self):
        reconciler = RecordingReconciler()
        queue = ReconcileQueue(reconciler)
        await queue.start()

        queue.add(KEY)
        queue.add(KEY)
        queue.add(KEY)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert reconciler.calls == [KEY]

    @pytest.mark.asyncio
    async def test_add_during_processing_runs_again(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        class SlowReconciler:
            def reconcile(self, key, log=None):
                calls.append(key)
                if len(calls) == 1:
                    started.set()
                    release.wait(2)
                return ReconcileResult(key=key)

        queue = ReconcileQueue(SlowReconciler())
        await queue.start()
        queue.add(KEY)
        await asyncio.to_thread(started.wait, 2)

        queue.add(KEY)
        release.set()
        for _ in range(50):
            if len(calls) == 2:
                break
            await asyncio.sleep(0.02)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert calls == [KEY, KEY]

    @pytest.mark.asyncio
    async def test_missing_definition_is_dropped(self):
        reconciler = RecordingReconciler([DefinitionNotFoundError("gone")])
        recorder = MagicMock()
        queue = ReconcileQueue(reconciler, recorder, backoff_base=0.01)
        await queue.start()

        queue.add(KEY)
        await asyncio.wait_for(queue.join(), timeout=2)
        await asyncio.sleep(0.05)
        await queue.stop()

        assert reconciler.calls == [KEY]
        assert queue.failures(KEY) == 0
        recorder.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_is_retried_with_backoff(self):
        reconciler = RecordingReconciler([ApplyError("boom")])
        recorder = MagicMock()
        queue = ReconcileQueue(reconciler, recorder, backoff_base=0.01, backoff_max=0.05)
        await queue.start()

        queue.add(KEY)
        for _ in range(100):
            if len(reconciler.calls) == 2:
                break
            await asyncio.sleep(0.01)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert reconciler.calls == [KEY, KEY]
        assert queue.failures(KEY) == 0
        args = recorder.record.call_args_list[0].args
        assert args[0] == KEY
        assert args[1] == "Warning"
        assert args[2] == "ReconcileFailed"

    @pytest.mark.asyncio
    async def test_success_with_changes_records_event(self):
        result = ReconcileResult(key=KEY, matched=1, outcomes={ApplyOutcome.CREATED: 1})
        recorder = MagicMock()
        queue = ReconcileQueue(RecordingReconciler([result]), recorder)
        await queue.start()

        queue.add(KEY)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        recorder.record.assert_called_once()
        assert recorder.record.call_args.args[2] == "Replicated"

    @pytest.mark.asyncio
    async def test_unchanged_pass_records_nothing(self):
        result = ReconcileResult(key=KEY, matched=1, outcomes={ApplyOutcome.UNCHANGED: 1})
        recorder = MagicMock()
        queue = ReconcileQueue(RecordingReconciler([result]), recorder)
        await queue.start()

        queue.add(KEY)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        recorder.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_threadsafe(self):
        reconciler = RecordingReconciler()
        queue = ReconcileQueue(reconciler)
        await queue.start()

        thread = threading.Thread(target=queue.add_threadsafe, args=(KEY,))
        thread.start()
        thread.join()
        await asyncio.sleep(0.05)
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert reconciler.calls == [KEY]

    @pytest.mark.asyncio
    async def test_add_after_stop_is_ignored(self):
        reconciler = RecordingReconciler()
        queue = ReconcileQueue(reconciler)
        await queue.start()
        await queue.stop()

        queue.add(KEY)

        assert not queue.running
        assert reconciler.calls == []
