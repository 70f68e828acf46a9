"""Storage adapter contract.

Any object exposing these four coroutines can persist executions; no
inheritance is required.

Design Decisions:
- save() is a whole-document upsert keyed by execution id (last writer wins)
- get() returns None as the explicit not-found signal
- query() is strict equality on top-level document fields, nothing more
- Sorting and limiting belong to the caller (see list_recent_executions)
"""

from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic.alias_generators import to_camel

from decision_trail.trace.models import Execution


@runtime_checkable
class StorageAdapter(Protocol):
    """Persistence boundary for executions."""

    async def save(self, execution: Execution) -> None:
        ...

    async def get(self, execution_id: str) -> Optional[Execution]:
        ...

    async def query(self, filter: dict[str, Any]) -> list[Execution]:
        ...

    async def delete(self, execution_id: str) -> None:
        ...


def normalize_filter(filter: dict[str, Any]) -> dict[str, Any]:
    """Map filter keys to document (camelCase) names and enums to their values."""
    normalized = {}
    for key, value in (filter or {}).items():
        if isinstance(value, Enum):
            value = value.value
        normalized[to_camel(key)] = value
    return normalized


def matches(execution: Execution, filter: dict[str, Any]) -> bool:
    """True when every filter pair equals the execution's top-level field."""
    if not filter:
        return True
    document = execution.model_dump(by_alias=True)
    for key, expected in normalize_filter(filter).items():
        if key not in document:
            return False
        actual = document[key]
        if isinstance(actual, Enum):
            actual = actual.value
        if actual != expected:
            return False
    return True


async def list_recent_executions(
    storage: StorageAdapter,
    pipeline_name: Optional[str] = None,
    limit: int = 50,
) -> list[Execution]:
    """Most recent executions first, optionally for one pipeline."""
    filter = {"pipelineName": pipeline_name} if pipeline_name else {}
    executions = await storage.query(filter)
    executions.sort(key=lambda e: e.started_at, reverse=True)
    return executions[:limit]
