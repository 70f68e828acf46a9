"""
JSON file storage adapter.

One ``<execution_id>.json`` document per execution inside a directory.
No database required.

Design Decisions:
- Writes go to a temporary file first and are moved into place with
  os.replace, so a reader never sees a half-written document
- query() scans the directory; fine for the small volumes this adapter targets
- File operations are async-friendly using aiofiles
"""

import json
import re
import uuid
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from decision_trail.storage.base import matches
from decision_trail.trace.errors import MalformedDocumentError, StorageError
from decision_trail.trace.models import Execution

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.\-]+$")


class JsonFileStorage:
    """Execution documents as JSON files on disk."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_storable_id(execution_id: str) -> bool:
        return bool(_SAFE_ID.match(execution_id)) and not execution_id.startswith(".")

    def path_for(self, execution_id: str) -> Path:
        if not self.is_storable_id(execution_id):
            raise StorageError(f"Execution id not usable as a file name: {execution_id!r}")
        return self.directory / f"{execution_id}.json"

    async def save(self, execution: Execution) -> None:
        target = self.path_for(execution.id)
        temp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        content = json.dumps(execution.to_document(), indent=2)

        try:
            async with aiofiles.open(temp, "w", encoding="utf-8") as f:
                await f.write(content)
            await aiofiles.os.replace(temp, target)
        except OSError as e:
            raise StorageError(f"Failed to save execution {execution.id}: {e}") from e

    async def get(self, execution_id: str) -> Optional[Execution]:
        # No file can exist for an id that is not a valid file name
        if not self.is_storable_id(execution_id):
            return None
        path = self.path_for(execution_id)
        if not path.exists():
            return None
        return await self._read(execution_id, path)

    async def query(self, filter: dict[str, Any]) -> list[Execution]:
        results = []
        for path in sorted(self.directory.glob("*.json")):
            execution = await self._read(path.stem, path)
            if matches(execution, filter):
                results.append(execution)
        return results

    async def delete(self, execution_id: str) -> None:
        if not self.is_storable_id(execution_id):
            return
        path = self.path_for(execution_id)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete execution {execution_id}: {e}") from e

    async def _read(self, execution_id: str, path: Path) -> Execution:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise StorageError(f"Failed to read execution {execution_id}: {e}") from e

        try:
            return Execution.from_document(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise MalformedDocumentError(execution_id, str(e)) from e
