"""In-memory storage adapter for tests and ephemeral runs."""

from typing import Any, Optional

from pydantic import ValidationError

from decision_trail.storage.base import matches, normalize_filter
from decision_trail.trace.errors import MalformedDocumentError
from decision_trail.trace.models import Execution


class InMemoryStorage:
    """Process-lifetime store of execution documents.

    Documents are kept in serialized form, so the caller's working copy and
    the stored copy never share mutable state.
    """

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}
        self._by_pipeline: dict[str, set[str]] = {}
        self._by_status: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    async def save(self, execution: Execution) -> None:
        document = execution.to_document()
        self._unindex(execution.id)
        self._documents[execution.id] = document
        self._by_pipeline.setdefault(document["pipelineName"], set()).add(execution.id)
        self._by_status.setdefault(document["status"], set()).add(execution.id)

    async def get(self, execution_id: str) -> Optional[Execution]:
        document = self._documents.get(execution_id)
        if document is None:
            return None
        return self._load(execution_id, document)

    async def query(self, filter: dict[str, Any]) -> list[Execution]:
        criteria = normalize_filter(filter)

        ids = list(self._documents)
        if "pipelineName" in criteria:
            narrowed = self._by_pipeline.get(criteria["pipelineName"], set())
            ids = [i for i in ids if i in narrowed]
        if "status" in criteria:
            narrowed = self._by_status.get(criteria["status"], set())
            ids = [i for i in ids if i in narrowed]

        results = []
        for execution_id in ids:
            execution = self._load(execution_id, self._documents[execution_id])
            if matches(execution, criteria):
                results.append(execution)
        return results

    async def delete(self, execution_id: str) -> None:
        self._unindex(execution_id)
        self._documents.pop(execution_id, None)

    def clear(self) -> None:
        self._documents.clear()
        self._by_pipeline.clear()
        self._by_status.clear()

    def _unindex(self, execution_id: str) -> None:
        previous = self._documents.get(execution_id)
        if previous is None:
            return
        self._by_pipeline.get(previous["pipelineName"], set()).discard(execution_id)
        self._by_status.get(previous["status"], set()).discard(execution_id)

    @staticmethod
    def _load(execution_id: str, document: dict[str, Any]) -> Execution:
        try:
            return Execution.from_document(document)
        except ValidationError as e:
            raise MalformedDocumentError(execution_id, str(e)) from e
