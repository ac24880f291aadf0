from datetime import date
from functools import lru_cache
from typing import Iterator

from fastapi import Depends, Header, Query

from hr_overtime.activity import StoreActivityLog
from hr_overtime.config import get_settings
from hr_overtime.filters import OvertimeFilters
from hr_overtime.models import Actor, OvertimeStatus, Role
from hr_overtime.session import OvertimeSession
from hr_overtime.sql_store import SqlRecordStore
from hr_overtime.store import RecordStore
from hr_overtime.workflow import OvertimeWorkflow


@lru_cache
def _store_for(database_url: str) -> SqlRecordStore:
    return SqlRecordStore(database_url)


def get_store() -> Iterator[RecordStore]:
    yield _store_for(get_settings().database_url)


def get_actor(
    x_actor_uid: str = Header(default=""),
    x_actor_email: str = Header(default=""),
    x_actor_role: str = Header(default=Role.COLABORADOR.value),
) -> Actor:
    return Actor(uid=x_actor_uid.strip(), email=x_actor_email.strip(), role=Role.parse(x_actor_role))


def get_filters(
    start: date | None = None,
    end: date | None = None,
    all_dates: bool = False,
    status: list[str] | None = Query(default=None),
    manager: str | None = None,
    cost_center: str | None = None,
    employee: str | None = None,
) -> OvertimeFilters:
    if start or end or all_dates:
        filters = OvertimeFilters(start=start, end=end)
    else:
        filters = OvertimeFilters.for_month(date.today())
    if status:
        filters.statuses = frozenset(OvertimeStatus.normalize(value) for value in status)
    filters.manager = manager
    filters.cost_center = cost_center
    filters.employee = employee
    return filters


def get_session(
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    filters: OvertimeFilters = Depends(get_filters),
) -> OvertimeSession:
    return OvertimeSession(store, actor, filters=filters).refresh()


def get_workflow(
    session: OvertimeSession = Depends(get_session),
    store: RecordStore = Depends(get_store),
) -> OvertimeWorkflow:
    return OvertimeWorkflow.from_settings(session, get_settings(), activity=StoreActivityLog(store))
