import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from hr_overtime.activity import JsonlActivityLog
from hr_overtime.models import Actor, Role
from hr_overtime.sql_store import SqlRecordStore
from hr_overtime.store import EMPLOYEES, OVERTIME, InMemoryRecordStore, JsonFileRecordStore


def sqlite_store():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return SqlRecordStore(engine=engine)


@pytest.fixture(params=["memory", "json", "sql"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    if request.param == "json":
        return JsonFileRecordStore(tmp_path / "data.json")
    return sqlite_store()


def test_create_and_list_carry_the_id(any_store):
    record_id = any_store.create(OVERTIME, {"forUid": "ana", "date": "2024-03-12"})

    assert any_store.list_all(OVERTIME) == [{"forUid": "ana", "date": "2024-03-12", "id": record_id}]
    assert any_store.list_all(EMPLOYEES) == []


def test_create_keeps_a_given_id(any_store):
    assert any_store.create(EMPLOYEES, {"id": "emp-ana", "name": "Ana"}) == "emp-ana"
    assert any_store.list_all(EMPLOYEES)[0]["id"] == "emp-ana"


def test_update_merges_top_level_fields(any_store):
    record_id = any_store.create(OVERTIME, {"status": "PENDENTE_GESTAO", "reason": "Inventory"})

    assert any_store.update_by_id(OVERTIME, record_id, {"status": "APROVADA", "decidedBy": "gus"})

    [record] = any_store.list_all(OVERTIME)
    assert record == {"id": record_id, "status": "APROVADA", "reason": "Inventory", "decidedBy": "gus"}


def test_update_of_missing_record_returns_false(any_store):
    assert any_store.update_by_id(OVERTIME, "missing", {"status": "APROVADA"}) is False


def test_list_orders_by_field(any_store):
    any_store.create(OVERTIME, {"id": "b", "date": "2024-03-12"})
    any_store.create(OVERTIME, {"id": "a", "date": "2024-03-04"})
    any_store.create(OVERTIME, {"id": "c"})

    assert [r["id"] for r in any_store.list_all(OVERTIME, order_by="date")] == ["a", "b", "c"]
    assert [r["id"] for r in any_store.list_all(OVERTIME)] == ["b", "a", "c"]


def test_listed_records_are_copies(any_store):
    record_id = any_store.create(OVERTIME, {"hoursCalc": {"total": 2}})

    any_store.list_all(OVERTIME)[0]["hoursCalc"]["total"] = 99

    assert any_store.list_all(OVERTIME)[0]["hoursCalc"] == {"total": 2}
    assert record_id


def test_json_store_persists_between_instances(tmp_path):
    path = tmp_path / "data.json"
    first = JsonFileRecordStore(path)
    record_id = first.create(OVERTIME, {"forUid": "ana"})
    first.update_by_id(OVERTIME, record_id, {"status": "APROVADA"})

    second = JsonFileRecordStore(path)

    assert second.list_all(OVERTIME) == [{"forUid": "ana", "status": "APROVADA", "id": record_id}]
    assert json.loads(path.read_text(encoding="utf-8"))[OVERTIME][0]["id"] == record_id


def test_sql_store_requires_url_or_engine():
    with pytest.raises(ValueError):
        SqlRecordStore()


def test_jsonl_activity_log_appends(tmp_path):
    log = JsonlActivityLog(tmp_path / "logs" / "activity.jsonl")

    log.record("overtime.create", {"id": "r1"}, Actor("adm", "adm@example.com", Role.ADM))
    log.record("overtime.import", {"ids": []})

    entries = log.read()
    assert [e["action"] for e in entries] == ["overtime.create", "overtime.import"]
    assert entries[0]["actor"] == {"uid": "adm", "email": "adm@example.com", "role": "ADM"}
    assert entries[1]["actor"] is None
    assert entries[0]["createdAt"]


def test_jsonl_activity_log_reads_nothing_before_first_write(tmp_path):
    assert JsonlActivityLog(tmp_path / "missing.jsonl").read() == []
