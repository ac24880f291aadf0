from datetime import date, datetime

import pytest
import structlog
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from hr_overtime.directory import EmployeeDirectory
from hr_overtime.filters import OvertimeFilters
from hr_overtime.hours import interval_for_day
from hr_overtime.models import Actor, OvertimeDraft, Role
from hr_overtime.session import OvertimeSession
from hr_overtime.sql_store import SqlRecordStore
from hr_overtime.store import EMPLOYEES, InMemoryRecordStore
from hr_overtime.workflow import OvertimeWorkflow

FIXED_NOW = datetime(2024, 3, 20, 9, 0)

EMPLOYEE_RECORDS = [
    {
        "id": "emp-ana",
        "uid": "ana",
        "name": "Ana Souza",
        "email": "ana@example.com",
        "managerUid": "gus",
        "costCenter": "OPS",
        "role": "Colaborador",
        "salary": 2200,
    },
    {
        "id": "emp-bruno",
        "uid": "bruno",
        "name": "Bruno Lima",
        "email": "bruno@example.com",
        "managerUid": "gus",
        "costCenter": "LOG",
        "role": "Colaborador",
        "salary": 4400,
    },
    {
        "id": "emp-carla",
        "uid": "carla",
        "name": "Carla Dias",
        "email": "carla@example.com",
        "gestorUid": "hel",
        "centroCusto": "FIN",
        "role": "Colaborador",
    },
    {"id": "emp-gus", "uid": "gus", "name": "Gustavo Reis", "email": "gus@example.com", "role": "Gestor", "salary": 8800},
    {"id": "emp-hel", "uid": "hel", "name": "Helena Prado", "email": "hel@example.com", "role": "Gestor"},
    {"id": "emp-adm", "uid": "adm", "name": "Admin", "email": "adm@example.com", "role": "ADM"},
    {"id": "emp-rh", "uid": "rh", "name": "Rita Nunes", "email": "rh@example.com", "role": "RH"},
]

ACTORS = {
    "adm": Actor("adm", "adm@example.com", Role.ADM),
    "rh": Actor("rh", "rh@example.com", Role.RH),
    "gus": Actor("gus", "gus@example.com", Role.GESTOR),
    "hel": Actor("hel", "hel@example.com", Role.GESTOR),
    "ana": Actor("ana", "ana@example.com", Role.COLABORADOR),
    "bruno": Actor("bruno", "bruno@example.com", Role.COLABORADOR),
}


class RecordingActivity:
    def __init__(self):
        self.entries = []

    def record(self, action, meta, actor=None):
        self.entries.append((action, meta, actor))

    @property
    def actions(self):
        return [action for action, _, _ in self.entries]


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    for record in EMPLOYEE_RECORDS:
        store.create(EMPLOYEES, record)
    return store


@pytest.fixture
def sql_store():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    store = SqlRecordStore(engine=engine)
    for record in EMPLOYEE_RECORDS:
        store.create(EMPLOYEES, record)
    return store


@pytest.fixture
def directory():
    return EmployeeDirectory.from_records(EMPLOYEE_RECORDS)


@pytest.fixture
def activity():
    return RecordingActivity()


@pytest.fixture
def make_workflow(store, activity):
    def factory(actor="adm", **kwargs):
        session = OvertimeSession(store, ACTORS[actor], filters=OvertimeFilters.for_month(FIXED_NOW.date())).refresh()
        kwargs.setdefault("activity", activity)
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        return OvertimeWorkflow(session, **kwargs)

    return factory


@pytest.fixture
def make_draft():
    def factory(for_uid="ana", day=date(2024, 3, 12), start="18:00", end="20:00", **kwargs):
        start_at, end_at = interval_for_day(day, start, end, allow_overnight=True)
        kwargs.setdefault("reason", "Inventory count")
        return OvertimeDraft(for_uid=for_uid, date=day, start=start_at, end=end_at, **kwargs)

    return factory
