import pytest

from fireplan.database import build_engine, build_session_maker, init_db
from fireplan.services import scenario_defaults
from fireplan.services.persistence import SQLScenarioRepository, LocalScenarioStore

from tests.conftest import OWNER_ID


@pytest.fixture
async def repository(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/scenarios.db")
    await init_db(engine)
    yield SQLScenarioRepository(build_session_maker(engine))
    await engine.dispose()


async def test_upsert_is_idempotent(repository):
    record = scenario_defaults.build_scenario(OWNER_ID, "Baseline").to_record()

    await repository.upsert(record)
    await repository.upsert(record)
    rows = await repository.list(OWNER_ID)

    assert len(rows) == 1
    assert rows[0]["id"] == record["id"]
    assert rows[0]["contributionProfile"] == record["contributionProfile"]


async def test_upsert_overwrites_and_delete_removes(repository):
    record = scenario_defaults.build_scenario(OWNER_ID, "Baseline").to_record()
    await repository.upsert(record)

    record["name"] = "Renamed"
    record["goal"]["targetAnnualIncome"] = 50000
    saved = await repository.upsert(record)
    assert saved["name"] == "Renamed"

    rows = await repository.list(OWNER_ID)
    assert [r["goal"]["targetAnnualIncome"] for r in rows] == [50000]

    await repository.delete(record["id"])
    assert await repository.list(OWNER_ID) == []


async def test_list_is_scoped_to_owner(repository):
    mine = scenario_defaults.build_scenario(OWNER_ID, "Mine").to_record()
    theirs = scenario_defaults.build_scenario(OWNER_ID, "Theirs").to_record()
    theirs["ownerId"] = "0190f3a4-7c1e-7d2a-9b1c-ffffffffffff"
    await repository.upsert(mine)
    await repository.upsert(theirs)

    assert [r["name"] for r in await repository.list(OWNER_ID)] == ["Mine"]


def test_local_store_round_trips_through_disk(tmp_path):
    store = LocalScenarioStore(str(tmp_path / "cache"))
    record = scenario_defaults.build_scenario(OWNER_ID, "Local").model_dump(mode="json")
    store.save(OWNER_ID, [record], ["0190f3a4-7c1e-7d2a-9b1c-ffffffffffff"])

    reopened = LocalScenarioStore(str(tmp_path / "cache"))
    records, pending = reopened.load(OWNER_ID)

    assert records[0]["name"] == "Local"
    assert pending == ["0190f3a4-7c1e-7d2a-9b1c-ffffffffffff"]


def test_local_store_ignores_corrupt_file(tmp_path):
    store = LocalScenarioStore(str(tmp_path))
    (tmp_path / f"scenarios_{OWNER_ID}.json").write_text("{broken")

    assert store.load(OWNER_ID) == ([], [])


def test_local_store_write_is_atomic(tmp_path):
    store = LocalScenarioStore(str(tmp_path))
    record = scenario_defaults.build_scenario(OWNER_ID, "Kept").model_dump(mode="json")
    store.save(OWNER_ID, [record], [])

    # A record that cannot be serialized must not clobber the last good copy
    store.save(OWNER_ID, [{"id": "broken", "value": object()}], [])

    records, _ = store.load(OWNER_ID)
    assert [r["name"] for r in records] == ["Kept"]
    assert list(tmp_path.glob("*.tmp")) == []


def test_local_store_replaces_previous_file(tmp_path):
    store = LocalScenarioStore(str(tmp_path))
    first = scenario_defaults.build_scenario(OWNER_ID, "First").model_dump(mode="json")
    second = scenario_defaults.build_scenario(OWNER_ID, "Second").model_dump(mode="json")

    store.save(OWNER_ID, [first], [])
    store.save(OWNER_ID, [second], [])

    records, _ = store.load(OWNER_ID)
    assert [r["name"] for r in records] == ["Second"]
    assert [p.name for p in tmp_path.iterdir()] == [f"scenarios_{OWNER_ID}.json"]
