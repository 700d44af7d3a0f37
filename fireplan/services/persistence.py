import json
import logging
import os
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
from uuid import UUID

from sqlmodel import select
from sqlalchemy.exc import SQLAlchemyError

from fireplan.core.errors import SyncError
from fireplan.models.scenario import ScenarioRecord

logger = logging.getLogger(__name__)


class ScenarioRepository:
    """
    Contract of the remote persistence collaborator.

    `upsert` must be idempotent: the same id with the same payload never
    produces a second row. Implementations raise SyncError on any transport
    or database failure.
    """

    async def list(self, owner_id: UUID) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def upsert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def delete(self, scenario_id: UUID) -> None:
        raise NotImplementedError


class SQLScenarioRepository(ScenarioRepository):
    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def list(self, owner_id: UUID) -> List[Dict[str, Any]]:
        try:
            async with self.session_maker() as session:
                stmt = select(ScenarioRecord).where(ScenarioRecord.ownerId == owner_id).order_by(ScenarioRecord.createdAt)
                result = await session.execute(stmt)
                return [row.model_dump(mode="json") for row in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Failed to list scenarios for {owner_id}: {e}") from e

    async def upsert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self.session_maker() as session:
                row = ScenarioRecord.model_validate(record)
                merged = await session.merge(row)
                await session.commit()
                await session.refresh(merged)
                return merged.model_dump(mode="json")
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Failed to upsert scenario {record.get('id')}: {e}") from e

    async def delete(self, scenario_id: UUID) -> None:
        try:
            async with self.session_maker() as session:
                row = await session.get(ScenarioRecord, scenario_id)
                if row:
                    await session.delete(row)
                    await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Failed to delete scenario {scenario_id}: {e}") from e


class LocalScenarioStore:
    """
    Local-only fallback used while the remote is unreachable.

    Keeps one JSON document per owner under `directory`; with no directory the
    data lives in memory for the life of the process.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory) if directory else None
        if self.directory:
            self.directory.mkdir(parents=True, exist_ok=True)
        self._memory: Dict[UUID, Dict[str, Any]] = {}

    def _path(self, owner_id: UUID) -> Path:
        return self.directory / f"scenarios_{owner_id}.json"

    def load(self, owner_id: UUID) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Returns (scenario records, ids deleted locally but not yet remotely)."""
        if self.directory is None:
            data = self._memory.get(owner_id, {})
        else:
            path = self._path(owner_id)
            if not path.exists():
                return [], []
            try:
                with open(path, "r") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read local scenarios for {owner_id}: {e}")
                return [], []
        return list(data.get("scenarios", [])), list(data.get("pendingDeletes", []))

    def save(self, owner_id: UUID, records: List[Dict[str, Any]], pending_deletes: List[str]) -> None:
        data = {"scenarios": records, "pendingDeletes": pending_deletes}
        if self.directory is None:
            self._memory[owner_id] = json.loads(json.dumps(data))
            return
        path = self._path(owner_id)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            # The previous file stays intact until the new one is complete
            payload = json.dumps(data, indent=2)
            with open(tmp_path, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write local scenarios for {owner_id}: {e}")
            tmp_path.unlink(missing_ok=True)
