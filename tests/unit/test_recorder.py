"""Unit tests for ExecutionRecorder and StepRecorder."""

import asyncio

import pytest

from decision_trail.storage import InMemoryStorage
from decision_trail.trace import (
    CandidateVerdict,
    ExecutionCompletedError,
    ExecutionRecorder,
    ExecutionStatus,
    FilterVerdict,
    ReadOnlyRecorderError,
    StepAlreadyRecordedError,
    StorageError,
)


class FailingStorage(InMemoryStorage):
    """Storage whose saves always fail."""

    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def save(self, execution):
        self.attempts += 1
        raise StorageError("disk full")


class SlowStorage(InMemoryStorage):
    """Storage that records the step count of every saved snapshot, in order."""

    def __init__(self):
        super().__init__()
        self.saved_step_counts = []

    async def save(self, execution):
        await asyncio.sleep(0.01)
        self.saved_step_counts.append(len(execution.steps))
        await super().save(execution)


def _verdict(candidate_id, passed, **evaluations):
    return CandidateVerdict(
        candidate={"id": candidate_id},
        passed=passed,
        evaluations=evaluations,
        failure_reasons=[] if passed else ["failed"],
    )


class TestStepRecorder:
    """Tests for the fluent step builder."""

    def test_record_appends_step(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        returned = (recorder.step("keyword_generation")
                    .input({"title": "bottle"})
                    .output({"keywords": ["bottle"]})
                    .reason("one token")
                    .metadata({"source": "test"})
                    .record())

        assert returned is recorder
        step = recorder.execution.steps[0]
        assert step.name == "keyword_generation"
        assert step.input == {"title": "bottle"}
        assert step.reasoning == "one token"
        assert step.metadata == {"source": "test"}
        assert step.duration is not None and step.duration >= 0

    def test_explicit_duration_kept(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").duration(1234).record()
        assert recorder.execution.steps[0].duration == 1234

    def test_setters_overwrite(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").reason("first").reason("second").record()
        assert recorder.execution.steps[0].reasoning == "second"

    def test_candidate_dicts_validated(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").candidates([
            {"candidate": {"id": "a"}, "passed": True},
            {"candidate": {"id": "b"}, "passed": False, "failureReasons": ["too cheap"]},
        ]).filters([{"name": "price_range", "passed": True}]).record()

        step = recorder.execution.steps[0]
        assert [v.candidate.id for v in step.candidate_results] == ["a", "b"]
        assert isinstance(step.filter_results[0], FilterVerdict)

    def test_builder_unusable_after_record(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        builder = recorder.step("s")
        builder.record()

        with pytest.raises(StepAlreadyRecordedError):
            builder.reason("late")
        with pytest.raises(StepAlreadyRecordedError):
            builder.record()
        assert len(recorder.execution.steps) == 1

    def test_unrecorded_builder_leaves_no_step(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("abandoned").input({"x": 1})
        assert recorder.execution.steps == []

    def test_steps_keep_record_order(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        first = recorder.step("first")
        second = recorder.step("second")
        second.record()
        first.record()
        assert [s.name for s in recorder.execution.steps] == ["second", "first"]


class TestExecutionRecorder:
    """Tests for execution lifecycle through the recorder."""

    def test_create(self, memory_storage):
        recorder = ExecutionRecorder.create(
            "competitor-detection", memory_storage, metadata={"version": "1.0"}
        )
        assert recorder.id.startswith("exec_")
        assert recorder.execution.pipeline_name == "competitor-detection"
        assert recorder.execution.status == ExecutionStatus.PENDING
        assert recorder.execution.metadata == {"version": "1.0"}

    def test_explicit_execution_id(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage, execution_id="exec_fixed")
        assert recorder.id == "exec_fixed"

    def test_set_result_from_dict(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.set_result({"selected": {"id": "x"}, "reason": "best", "confidence": 0.9})
        assert recorder.execution.result.selected.id == "x"

    @pytest.mark.asyncio
    async def test_complete_persists(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").record()
        execution = await recorder.complete("success")

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.total_duration is not None
        stored = await memory_storage.get(recorder.id)
        assert stored.status == ExecutionStatus.SUCCESS
        assert len(stored.steps) == 1

    @pytest.mark.asyncio
    async def test_nothing_persisted_before_complete(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").record()
        assert await memory_storage.get(recorder.id) is None

    @pytest.mark.asyncio
    async def test_complete_twice_rejected(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        await recorder.complete("success")
        with pytest.raises(ExecutionCompletedError):
            await recorder.complete("failure")
        stored = await memory_storage.get(recorder.id)
        assert stored.status == ExecutionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_complete_with_pending_rejected(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        with pytest.raises(ValueError):
            await recorder.complete("pending")
        assert len(memory_storage) == 0

    @pytest.mark.asyncio
    async def test_writes_rejected_after_complete(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        await recorder.complete("cancelled")

        with pytest.raises(ExecutionCompletedError):
            recorder.step("late").record()
        with pytest.raises(ExecutionCompletedError):
            recorder.set_result({"reason": "late"})
        recorder.set_metadata({"note": "annotated later"})
        assert recorder.execution.metadata["note"] == "annotated later"

    @pytest.mark.asyncio
    async def test_final_save_failure_propagates(self):
        storage = FailingStorage()
        recorder = ExecutionRecorder.create("p", storage)
        with pytest.raises(StorageError):
            await recorder.complete("success")
        # The in-memory execution is still terminal
        assert recorder.execution.status == ExecutionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_load(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").record()
        await recorder.complete("success")

        loaded = await ExecutionRecorder.load(recorder.id, memory_storage)
        assert loaded.id == recorder.id
        assert len(loaded.execution.steps) == 1
        assert await ExecutionRecorder.load("exec_missing", memory_storage) is None

    @pytest.mark.asyncio
    async def test_loaded_recorder_is_read_only(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage)
        recorder.step("s").record()
        await recorder.save()

        loaded = await ExecutionRecorder.load(recorder.id, memory_storage)
        assert loaded.read_only
        assert loaded.execution.status == ExecutionStatus.PENDING

        with pytest.raises(ReadOnlyRecorderError):
            loaded.step("another")
        with pytest.raises(ReadOnlyRecorderError):
            loaded.set_result({"reason": "late"})
        with pytest.raises(ReadOnlyRecorderError):
            loaded.set_metadata({"k": "v"})
        with pytest.raises(ReadOnlyRecorderError):
            await loaded.save()
        with pytest.raises(ReadOnlyRecorderError):
            await loaded.complete("success")

        stored = await memory_storage.get(recorder.id)
        assert stored.status == ExecutionStatus.PENDING
        assert len(stored.steps) == 1
        assert stored.result is None
        assert loaded.get_summary()["total_steps"] == 1


class TestAutoSave:
    """Tests for background snapshot saves."""

    @pytest.mark.asyncio
    async def test_snapshot_saved_after_each_step(self):
        storage = SlowStorage()
        recorder = ExecutionRecorder.create("p", storage, auto_save=True)
        recorder.step("one").record()
        recorder.step("two").record()
        await recorder.complete("success")

        # Two snapshots, then the final document last
        assert storage.saved_step_counts == [1, 2, 2]
        stored = await storage.get(recorder.id)
        assert stored.status == ExecutionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_snapshot_failures_do_not_break_recording(self):
        storage = FailingStorage()
        recorder = ExecutionRecorder.create("p", storage, auto_save=True)
        recorder.step("one").record()
        recorder.step("two").record()
        await asyncio.sleep(0)

        assert len(recorder.execution.steps) == 2
        with pytest.raises(StorageError):
            await recorder.complete("success")
        assert storage.attempts == 3

    def test_no_event_loop_skips_snapshot(self, memory_storage):
        recorder = ExecutionRecorder.create("p", memory_storage, auto_save=True)
        recorder.step("one").record()
        assert len(recorder.execution.steps) == 1
        assert len(memory_storage) == 0


class TestAnalysis:
    """Tests for failure lookup and summary helpers."""

    def _recorder(self, storage):
        recorder = ExecutionRecorder.create("p", storage)
        recorder.step("keyword_generation").record()
        recorder.step("apply_filters").candidates([
            _verdict("a", True, price_range={"passed": True}, min_rating={"passed": True}),
            _verdict("b", False, price_range={"passed": False}, min_rating={"passed": True}),
            _verdict("c", False, price_range={"passed": False}, min_rating={"passed": False}),
        ]).record()
        recorder.step("rank_and_select").candidates([
            _verdict("a", True, business_rules={"passed": True}),
        ]).record()
        return recorder

    def test_find_failures_by_filter(self, memory_storage):
        recorder = self._recorder(memory_storage)
        assert [v.candidate.id for v in recorder.find_failures_by_filter("price_range")] == ["b", "c"]
        assert [v.candidate.id for v in recorder.find_failures_by_filter("min_rating")] == ["c"]
        assert recorder.find_failures_by_filter("unknown_rule") == []

    def test_summary(self, memory_storage):
        summary = self._recorder(memory_storage).get_summary()
        assert summary == {
            "total_steps": 3,
            "total_candidates": 4,
            "candidates_passed": 2,
            "candidates_failed": 2,
            "duration": 0,
            "filter_failures": {"price_range": 2, "min_rating": 1},
        }

    def test_summary_of_empty_execution(self, memory_storage):
        summary = ExecutionRecorder.create("p", memory_storage).get_summary()
        assert summary["total_steps"] == 0
        assert summary["filter_failures"] == {}
