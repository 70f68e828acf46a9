"""Unit tests for storage adapters.

The contract tests run against every adapter through the ``storage`` fixture.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect

from decision_trail.config import Settings
from decision_trail.storage import (
    InMemoryStorage,
    JsonFileStorage,
    SQLStorage,
    StorageAdapter,
    create_storage,
    list_recent_executions,
)
from decision_trail.storage.base import normalize_filter
from decision_trail.trace import (
    CandidateVerdict,
    Execution,
    ExecutionStatus,
    MalformedDocumentError,
    Step,
    StorageError,
)

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_execution(
    execution_id: str,
    pipeline_name: str = "competitor-detection",
    status: str = "success",
    minutes: int = 0,
) -> Execution:
    started = BASE_TIME + timedelta(minutes=minutes)
    execution = Execution(id=execution_id, pipeline_name=pipeline_name, started_at=started)
    execution.append_step(Step(
        name="apply_filters",
        input={"candidates_count": 2},
        candidate_results=[
            CandidateVerdict(candidate={"id": "a", "title": "Bottle"}, passed=True),
            CandidateVerdict(candidate={"id": "b"}, passed=False, failure_reasons=["too cheap"]),
        ],
    ))
    if status != "pending":
        execution.mark_complete(status, completed_at=started + timedelta(seconds=2))
    return execution


class TestStorageContract:
    """Behavior every adapter must share."""

    def test_satisfies_protocol(self, storage):
        assert isinstance(storage, StorageAdapter)

    @pytest.mark.asyncio
    async def test_save_then_get(self, storage):
        execution = make_execution("exec_1")
        await storage.save(execution)

        loaded = await storage.get("exec_1")
        assert loaded.to_document() == execution.to_document()
        assert loaded.steps[0].candidate_results[1].failure_reasons == ["too cheap"]

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, storage):
        assert await storage.get("exec_missing") is None

    @pytest.mark.asyncio
    async def test_save_replaces_whole_document(self, storage):
        pending = make_execution("exec_1", status="pending")
        await storage.save(pending)

        pending.append_step(Step(name="rank_and_select"))
        pending.mark_complete("failure")
        await storage.save(pending)

        loaded = await storage.get("exec_1")
        assert loaded.status == ExecutionStatus.FAILURE
        assert [s.name for s in loaded.steps] == ["apply_filters", "rank_and_select"]
        assert len(await storage.query({})) == 1

    @pytest.mark.asyncio
    async def test_stored_copy_is_independent(self, storage):
        execution = make_execution("exec_1", status="pending")
        await storage.save(execution)
        execution.append_step(Step(name="unsaved"))

        loaded = await storage.get("exec_1")
        assert len(loaded.steps) == 1

    @pytest.mark.asyncio
    async def test_query_by_fields(self, storage):
        await storage.save(make_execution("exec_1", "competitor-detection", "success"))
        await storage.save(make_execution("exec_2", "competitor-detection", "failure"))
        await storage.save(make_execution("exec_3", "lead-scoring", "success"))

        by_pipeline = await storage.query({"pipelineName": "competitor-detection"})
        assert sorted(e.id for e in by_pipeline) == ["exec_1", "exec_2"]

        both = await storage.query({"pipeline_name": "competitor-detection", "status": ExecutionStatus.SUCCESS})
        assert [e.id for e in both] == ["exec_1"]

        assert len(await storage.query({})) == 3
        assert await storage.query({"status": "cancelled"}) == []
        assert await storage.query({"noSuchField": 1}) == []

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        await storage.save(make_execution("exec_1"))
        await storage.delete("exec_1")
        assert await storage.get("exec_1") is None
        assert await storage.query({}) == []

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, storage):
        await storage.delete("exec_missing")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("execution_id", ["exec:1", "../escape", ".hidden", "exec 1"])
    async def test_ids_unusable_as_file_names_are_not_found(self, storage, execution_id):
        assert await storage.get(execution_id) is None
        await storage.delete(execution_id)

    @pytest.mark.asyncio
    async def test_concurrent_saves_for_different_ids(self, storage):
        executions = [make_execution(f"exec_{i}", minutes=i) for i in range(10)]
        await asyncio.gather(*(storage.save(e) for e in executions))
        assert len(await storage.query({})) == 10

    @pytest.mark.asyncio
    async def test_concurrent_saves_for_same_id(self, storage):
        for round_number in range(10):
            execution_id = f"exec_same_{round_number}"
            versions = [make_execution(execution_id, minutes=i) for i in range(4)]

            await asyncio.gather(*(storage.save(e) for e in versions))

            stored = await storage.get(execution_id)
            assert stored.to_document() in [e.to_document() for e in versions]

        assert len(await storage.query({})) == 10

    @pytest.mark.asyncio
    async def test_list_recent_executions(self, storage):
        await storage.save(make_execution("exec_old", minutes=0))
        await storage.save(make_execution("exec_new", minutes=10))
        await storage.save(make_execution("exec_mid", minutes=5))
        await storage.save(make_execution("exec_lead", "lead-scoring", minutes=20))

        recent = await list_recent_executions(storage)
        assert [e.id for e in recent] == ["exec_lead", "exec_new", "exec_mid", "exec_old"]

        limited = await list_recent_executions(storage, pipeline_name="competitor-detection", limit=2)
        assert [e.id for e in limited] == ["exec_new", "exec_mid"]


class TestNormalizeFilter:
    """Tests for filter key normalization."""

    def test_snake_case_keys_and_enums(self):
        assert normalize_filter({"pipeline_name": "p", "status": ExecutionStatus.FAILURE}) == {
            "pipelineName": "p",
            "status": "failure",
        }

    def test_camel_case_keys_unchanged(self):
        assert normalize_filter({"pipelineName": "p"}) == {"pipelineName": "p"}


class TestInMemoryStorage:
    """Tests specific to the in-memory adapter."""

    @pytest.mark.asyncio
    async def test_status_index_follows_updates(self):
        storage = InMemoryStorage()
        execution = make_execution("exec_1", status="pending")
        await storage.save(execution)
        execution.mark_complete("success")
        await storage.save(execution)

        assert await storage.query({"status": "pending"}) == []
        assert len(await storage.query({"status": "success"})) == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        storage = InMemoryStorage()
        await storage.save(make_execution("exec_1"))
        storage.clear()
        assert len(storage) == 0


class TestSQLStorage:
    """Tests specific to the SQLAlchemy adapter."""

    def test_schema_and_indexes_created(self, tmp_path):
        storage = SQLStorage(f"sqlite:///{tmp_path / 'nested' / 'trace.db'}")
        inspector = inspect(storage.engine)

        assert "trace_executions" in inspector.get_table_names()
        index_names = {index["name"] for index in inspector.get_indexes("trace_executions")}
        assert "ix_trace_executions_started_at_desc" in index_names
        assert "ix_trace_executions_pipeline_name" in index_names
        assert "ix_trace_executions_status" in index_names
        storage.close()

    @pytest.mark.asyncio
    async def test_data_survives_new_adapter(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'trace.db'}"
        first = SQLStorage(url)
        await first.save(make_execution("exec_1"))
        first.close()

        second = SQLStorage(url)
        assert (await second.get("exec_1")).status == ExecutionStatus.SUCCESS
        second.close()

    @pytest.mark.asyncio
    async def test_upsert_without_native_on_conflict(self, tmp_path, monkeypatch):
        monkeypatch.setattr("decision_trail.storage.sql._UPSERT_INSERTS", {})
        storage = SQLStorage(f"sqlite:///{tmp_path / 'trace.db'}")

        await storage.save(make_execution("exec_1", status="pending"))
        await storage.save(make_execution("exec_1", status="failure"))
        assert (await storage.get("exec_1")).status == ExecutionStatus.FAILURE

        versions = [make_execution("exec_2", minutes=i) for i in range(4)]
        await asyncio.gather(*(storage.save(e) for e in versions))
        assert (await storage.get("exec_2")).to_document() in [e.to_document() for e in versions]
        assert len(await storage.query({"status": "failure"})) == 1
        storage.close()

    def test_requires_url_or_engine(self):
        with pytest.raises(ValueError):
            SQLStorage()


class TestJsonFileStorage:
    """Tests specific to the JSON file adapter."""

    @pytest.mark.asyncio
    async def test_one_file_per_execution(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        await storage.save(make_execution("exec_1"))

        path = tmp_path / "exec_1.json"
        assert path.exists()
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["pipelineName"] == "competitor-detection"
        assert not list(tmp_path.glob("*.tmp"))

    def test_unsafe_id_rejected(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        with pytest.raises(StorageError):
            storage.path_for("../escape")

    @pytest.mark.asyncio
    async def test_save_with_unsafe_id_rejected(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        with pytest.raises(StorageError):
            await storage.save(make_execution("exec:1"))
        assert await storage.get("exec:1") is None

    @pytest.mark.asyncio
    async def test_malformed_document(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        (tmp_path / "exec_bad.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(MalformedDocumentError) as exc_info:
            await storage.get("exec_bad")
        assert exc_info.value.execution_id == "exec_bad"

    @pytest.mark.asyncio
    async def test_invalid_lifecycle_is_malformed(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        (tmp_path / "exec_bad.json").write_text(
            json.dumps({"id": "exec_bad", "pipelineName": "p", "status": "success",
                        "startedAt": "2024-01-01T00:00:00Z"}),
            encoding="utf-8",
        )
        with pytest.raises(MalformedDocumentError):
            await storage.get("exec_bad")


class TestCreateStorage:
    """Tests for settings-driven adapter selection."""

    def test_memory(self):
        assert isinstance(create_storage(Settings(storage_backend="memory")), InMemoryStorage)

    def test_files(self, tmp_path):
        storage = create_storage(Settings(storage_backend="files", executions_dir=tmp_path / "runs"))
        assert isinstance(storage, JsonFileStorage)
        assert storage.directory == tmp_path / "runs"

    def test_sql(self, tmp_path):
        storage = create_storage(Settings(storage_backend="sql", database_url=f"sqlite:///{tmp_path / 'x.db'}"))
        assert isinstance(storage, SQLStorage)
        storage.close()
