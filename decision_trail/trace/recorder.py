"""Execution and step recorders.

Usage:
    recorder = ExecutionRecorder.create("lead-scoring", storage)

    (recorder.step("enrich_data")
        .input({"lead_id": "L123"})
        .output({"enriched_fields": ["company", "industry"]})
        .reason("Enriched 2 fields from the CRM record")
        .record())

    await recorder.complete("success")

Persistence:
    complete() performs the authoritative save. With auto_save=True every
    recorded step also schedules a background save of a snapshot; those
    saves are best-effort and only ever reported through the log.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Optional, Union

import structlog

from decision_trail.trace.errors import ReadOnlyRecorderError, StepAlreadyRecordedError
from decision_trail.trace.models import (
    CandidateVerdict,
    Execution,
    ExecutionResult,
    ExecutionStatus,
    FilterVerdict,
    Step,
    duration_ms,
    generate_id,
    utc_now,
)

if TYPE_CHECKING:
    from decision_trail.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)


class StepRecorder:
    """Fluent builder scoped to exactly one step.

    Each setter overwrites its field and returns the builder. ``record()``
    hands the finished Step to the owning recorder; the builder is unusable
    afterwards.
    """

    def __init__(self, name: str, owner: "ExecutionRecorder"):
        self._owner = owner
        self._recorded = False
        self._fields: dict[str, Any] = {
            "id": generate_id("step"),
            "name": name,
            "timestamp": utc_now(),
            "input": {},
            "output": {},
            "reasoning": "",
        }

    @property
    def name(self) -> str:
        return self._fields["name"]

    def _set(self, key: str, value: Any) -> "StepRecorder":
        if self._recorded:
            raise StepAlreadyRecordedError(self.name)
        self._fields[key] = value
        return self

    def input(self, data: dict[str, Any]) -> "StepRecorder":
        return self._set("input", data)

    def output(self, data: dict[str, Any]) -> "StepRecorder":
        return self._set("output", data)

    def reason(self, text: str) -> "StepRecorder":
        return self._set("reasoning", text)

    def candidates(
        self, results: list[Union[CandidateVerdict, dict[str, Any]]]
    ) -> "StepRecorder":
        verdicts = [
            r if isinstance(r, CandidateVerdict) else CandidateVerdict.model_validate(r)
            for r in results
        ]
        return self._set("candidate_results", verdicts)

    def filters(
        self, results: list[Union[FilterVerdict, dict[str, Any]]]
    ) -> "StepRecorder":
        verdicts = [
            r if isinstance(r, FilterVerdict) else FilterVerdict.model_validate(r)
            for r in results
        ]
        return self._set("filter_results", verdicts)

    def metadata(self, data: dict[str, Any]) -> "StepRecorder":
        return self._set("metadata", data)

    def duration(self, ms: int) -> "StepRecorder":
        return self._set("duration", ms)

    def record(self) -> "ExecutionRecorder":
        """Finalize the step and append it to the execution."""
        if self._recorded:
            raise StepAlreadyRecordedError(self.name)

        if self._fields.get("duration") is None:
            self._fields["duration"] = max(0, duration_ms(self._fields["timestamp"], utc_now()))

        step = Step(**self._fields)
        self._owner.add_step(step)
        self._recorded = True
        return self._owner


class ExecutionRecorder:
    """Owns one Execution from creation to its terminal status."""

    def __init__(
        self,
        execution: Execution,
        storage: "StorageAdapter",
        auto_save: bool = False,
        read_only: bool = False,
    ):
        self._execution = execution
        self._storage = storage
        self._auto_save = auto_save
        self._read_only = read_only
        self._pending_saves: set[asyncio.Task] = set()

    @classmethod
    def create(
        cls,
        pipeline_name: str,
        storage: "StorageAdapter",
        *,
        execution_id: Optional[str] = None,
        auto_save: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "ExecutionRecorder":
        """Start a new pending execution.

        Args:
            pipeline_name: Logical workflow name.
            storage: Adapter that receives the execution on save.
            execution_id: Explicit id for idempotent replays; generated otherwise.
            auto_save: Save a snapshot in the background after every step.
            metadata: Initial execution metadata.
        """
        execution = Execution(
            pipeline_name=pipeline_name,
            metadata=dict(metadata or {}),
            **({"id": execution_id} if execution_id else {}),
        )
        logger.info(
            "execution_created",
            execution_id=execution.id,
            pipeline=pipeline_name,
            auto_save=auto_save,
        )
        return cls(execution, storage, auto_save=auto_save)

    @classmethod
    async def load(cls, execution_id: str, storage: "StorageAdapter") -> Optional["ExecutionRecorder"]:
        """Wrap a persisted execution for read-only analysis.

        Recording, result, metadata and save calls on the returned recorder
        raise ReadOnlyRecorderError.

        Returns:
            The recorder, or None when the id is not stored.
        """
        execution = await storage.get(execution_id)
        if execution is None:
            return None
        return cls(execution, storage, read_only=True)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def execution(self) -> Execution:
        return self._execution

    @property
    def id(self) -> str:
        return self._execution.id

    @property
    def storage(self) -> "StorageAdapter":
        return self._storage

    @property
    def read_only(self) -> bool:
        return self._read_only

    def _ensure_writable(self) -> None:
        if self._read_only:
            raise ReadOnlyRecorderError(self.id)

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def step(self, name: str) -> StepRecorder:
        self._ensure_writable()
        return StepRecorder(name, self)

    def add_step(self, step: Step) -> None:
        self._ensure_writable()
        self._execution.append_step(step)
        logger.debug(
            "step_recorded",
            execution_id=self.id,
            step=step.name,
            duration_ms=step.duration,
            candidates=len(step.candidate_results or []),
        )
        if self._auto_save:
            self._schedule_auto_save()

    def set_result(self, result: Union[ExecutionResult, dict[str, Any]]) -> "ExecutionRecorder":
        self._ensure_writable()
        if not isinstance(result, ExecutionResult):
            result = ExecutionResult.model_validate(result)
        self._execution.assign_result(result)
        return self

    def set_metadata(self, data: dict[str, Any]) -> "ExecutionRecorder":
        self._ensure_writable()
        self._execution.merge_metadata(data)
        return self

    async def save(self) -> None:
        self._ensure_writable()
        await self._storage.save(self._execution)

    async def complete(self, status: Union[ExecutionStatus, str]) -> Execution:
        """Terminate the execution and persist it.

        Raises:
            ValueError: If ``status`` is not terminal.
            ExecutionCompletedError: If the execution was already completed.
            StorageError: If the final save fails.
            ReadOnlyRecorderError: If the recorder was loaded for analysis.
        """
        self._ensure_writable()
        self._execution.mark_complete(status)

        # The final document must be the last write for this id
        if self._pending_saves:
            await asyncio.gather(*self._pending_saves, return_exceptions=True)

        await self.save()
        logger.info(
            "execution_completed",
            execution_id=self.id,
            status=self._execution.status.value,
            steps=len(self._execution.steps),
            total_duration_ms=self._execution.total_duration,
        )
        return self._execution

    def _schedule_auto_save(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("auto_save_skipped", execution_id=self.id, reason="no running event loop")
            return

        snapshot = self._execution.model_copy(deep=True)
        task = loop.create_task(self._auto_save_snapshot(snapshot))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _auto_save_snapshot(self, snapshot: Execution) -> None:
        try:
            await self._storage.save(snapshot)
        except Exception as e:
            # Advisory persistence: report and carry on
            logger.warning(
                "auto_save_failed",
                execution_id=snapshot.id,
                steps=len(snapshot.steps),
                error=str(e),
                error_type=type(e).__name__,
            )

    # -------------------------------------------------------------------------
    # Analysis helpers
    # -------------------------------------------------------------------------

    def find_failures_by_filter(self, rule_name: str) -> list[CandidateVerdict]:
        """All failed candidate verdicts whose ``rule_name`` evaluation failed."""
        failures = []
        for step in self._execution.steps:
            for verdict in step.candidate_results or []:
                evaluation = verdict.evaluations.get(rule_name)
                if not verdict.passed and evaluation is not None and not evaluation.passed:
                    failures.append(verdict)
        return failures

    def get_summary(self) -> dict[str, Any]:
        """Aggregate candidate pass/fail counts and per-rule failure tallies."""
        total_candidates = 0
        candidates_passed = 0
        candidates_failed = 0
        filter_failures: dict[str, int] = {}

        for step in self._execution.steps:
            for verdict in step.candidate_results or []:
                total_candidates += 1
                if verdict.passed:
                    candidates_passed += 1
                    continue

                candidates_failed += 1
                for rule_name, evaluation in verdict.evaluations.items():
                    if not evaluation.passed:
                        filter_failures[rule_name] = filter_failures.get(rule_name, 0) + 1

        return {
            "total_steps": len(self._execution.steps),
            "total_candidates": total_candidates,
            "candidates_passed": candidates_passed,
            "candidates_failed": candidates_failed,
            "duration": self._execution.total_duration or 0,
            "filter_failures": filter_failures,
        }
