from typing import Optional, List, Any, Dict
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from sqlalchemy.dialects.postgresql import JSONB
from uuid6 import uuid7

from fireplan.models.profiles import ContributionProfile, PensionProfile, Goal
from fireplan.models.results import ScenarioResults

SCENARIO_SCHEMA_VERSION = 2

JsonColumn = JSON().with_variant(JSONB(), "postgresql")

# Persisted row. Any remote store must honor this shape.

class ScenarioRecord(SQLModel, table=True):
    __tablename__ = "scenarios"
    id: UUID = Field(default_factory=uuid7, primary_key=True)
    ownerId: UUID = Field(index=True, sa_column_kwargs={"name": "owner_id"})
    name: str = Field(sa_column_kwargs={"name": "scenario_name"})
    schemaVersion: int = Field(default=SCENARIO_SCHEMA_VERSION, sa_column_kwargs={"name": "schema_version"})

    contributionProfile: Dict = Field(default={}, sa_column=Column(JsonColumn, name="contribution_profile"))
    pensionProfile: Dict = Field(default={}, sa_column=Column(JsonColumn, name="pension_profile"))
    goal: Dict = Field(default={}, sa_column=Column(JsonColumn, name="goal"))
    cachedResults: Optional[Dict] = Field(default=None, sa_column=Column(JsonColumn, name="cached_results", nullable=True))
    meta: Optional[Dict] = Field(default=None, sa_column=Column(JsonColumn, name="meta", nullable=True))

    createdAt: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"name": "created_at"})
    updatedAt: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"name": "updated_at"})


# In-memory scenario owned by the store

class SyncState:
    CLEAN = "clean"
    DIRTY = "dirty"
    SYNCING = "syncing"


class Scenario(BaseModel):
    id: UUID = PydanticField(default_factory=uuid7)
    name: str
    ownerId: UUID
    contributionProfile: ContributionProfile
    pensionProfile: PensionProfile
    goal: Goal
    cachedResults: Optional[ScenarioResults] = None
    createdAt: datetime = PydanticField(default_factory=datetime.utcnow)
    updatedAt: datetime = PydanticField(default_factory=datetime.utcnow)
    schemaVersion: int = SCENARIO_SCHEMA_VERSION
    meta: Dict[str, Any] = {}

    # Sync bookkeeping, never persisted
    dirty: bool = True
    syncState: str = SyncState.DIRTY
    revision: int = 0

    def to_record(self) -> Dict[str, Any]:
        """Serializes to the persisted record shape (JSON-safe dict)."""
        data = self.model_dump(mode="json", exclude={"dirty", "syncState", "revision"})
        return data

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Scenario":
        scenario = cls.model_validate(record)
        scenario.dirty = False
        scenario.syncState = SyncState.CLEAN
        return scenario


class ScenarioCollection(BaseModel):
    ownerId: UUID
    scenarios: List[Scenario] = []
    scenarioLimit: Optional[int] = None  # None = unlimited
    offline: bool = False
    syncError: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.scenarios)
