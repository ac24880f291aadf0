from __future__ import annotations

from calendar import monthrange
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .cost import DEFAULT_COST_CONFIG, CostConfig, compute_cost
from .directory import EmployeeDirectory
from .models import APPROVED_STATUSES, STATUS_ORDER, Actor, OvertimeRequest, OvertimeStatus, Role

TOP_LIMIT = 5

Ranking = List[Tuple[str, float]]


@dataclass
class OvertimeFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    statuses: FrozenSet[OvertimeStatus] = frozenset(OvertimeStatus)
    manager: Optional[str] = None
    cost_center: Optional[str] = None
    employee: Optional[str] = None

    @classmethod
    def for_month(cls, day: date) -> "OvertimeFilters":
        """Default window: the calendar month of ``day`` with every status selected."""
        _, last_day = monthrange(day.year, day.month)
        return cls(start=day.replace(day=1), end=day.replace(day=last_day))


def scope_records(records: Iterable[OvertimeRequest], actor: Actor) -> List[OvertimeRequest]:
    """Records the actor may see: all, their team, or only their own."""
    records = list(records)
    if actor.role in (Role.ADM, Role.RH):
        return records
    if actor.role == Role.GESTOR:
        return [r for r in records if actor.uid and r.manager_uid == actor.uid]
    return [r for r in records if r.is_owned_by(actor)]


def apply_filters(
    records: Iterable[OvertimeRequest],
    filters: OvertimeFilters,
    directory: EmployeeDirectory,
) -> List[OvertimeRequest]:
    needle = (filters.employee or "").strip().lower()

    def matches(record: OvertimeRequest) -> bool:
        if filters.statuses and record.status not in filters.statuses:
            return False
        if filters.start and record.date < filters.start:
            return False
        if filters.end and record.date > filters.end:
            return False
        if filters.manager and record.manager_uid != filters.manager:
            return False
        if filters.cost_center and record.cost_center != filters.cost_center:
            return False
        if needle:
            employee = directory.for_request(record)
            if employee:
                identifier = f"{employee.name} {employee.email}".lower()
            else:
                identifier = (record.for_email or "").lower()
            if needle not in identifier:
                return False
        return True

    return [record for record in records if matches(record)]


def sort_for_table(records: Iterable[OvertimeRequest]) -> List[OvertimeRequest]:
    by_status = sorted(records, key=lambda r: STATUS_ORDER.index(r.status))
    return sorted(by_status, key=lambda r: r.date, reverse=True)


def record_cost(
    record: OvertimeRequest,
    directory: EmployeeDirectory,
    config: CostConfig = DEFAULT_COST_CONFIG,
) -> float:
    employee = directory.for_request(record)
    if not employee:
        return 0.0
    return compute_cost(record.hours_calc, employee.salary, config)


@dataclass(frozen=True)
class Kpis:
    pending: int
    hours: float
    cost: Optional[float]


def build_kpis(
    filtered: Iterable[OvertimeRequest],
    accessible: Iterable[OvertimeRequest],
    directory: EmployeeDirectory,
    config: CostConfig = DEFAULT_COST_CONFIG,
    *,
    show_cost: bool = True,
) -> Kpis:
    """Pending is counted over the whole visible scope, hours and cost over the filtered set."""
    pending = sum(1 for r in accessible if r.status == OvertimeStatus.PENDENTE_GESTAO)
    approved = [r for r in filtered if r.status in APPROVED_STATUSES]
    hours = round(sum(r.hours_calc.total for r in approved), 2)
    cost = round(sum(record_cost(r, directory, config) for r in approved), 2) if show_cost else None
    return Kpis(pending=pending, hours=hours, cost=cost)


@dataclass(frozen=True)
class TopLists:
    employees: Ranking = field(default_factory=list)
    cost_centers: Ranking = field(default_factory=list)


def _ranking(totals: Dict[str, float], limit: int) -> Ranking:
    # sorted() is stable, so equal totals keep first-seen order.
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [(name, round(hours, 2)) for name, hours in ranked[:limit]]


def top_lists(
    records: Iterable[OvertimeRequest],
    directory: EmployeeDirectory,
    limit: int = TOP_LIMIT,
) -> TopLists:
    by_employee: Dict[str, float] = defaultdict(float)
    by_center: Dict[str, float] = defaultdict(float)
    for record in records:
        hours = record.hours_calc.total
        if not hours:
            continue
        employee = directory.for_request(record)
        name = employee.name if employee else (record.for_email or "—")
        by_employee[name] += hours
        center = record.cost_center or (employee.cost_center if employee else "") or "—"
        by_center[center] += hours
    return TopLists(employees=_ranking(by_employee, limit), cost_centers=_ranking(by_center, limit))


def collaborator_summary(records: Iterable[OvertimeRequest]) -> Dict[str, float]:
    """Hours per status value plus a ``total`` key."""
    summary: Dict[str, float] = {"total": 0.0}
    for record in records:
        hours = record.hours_calc.total
        summary["total"] += hours
        summary[record.status.value] = summary.get(record.status.value, 0.0) + hours
    return {key: round(value, 2) for key, value in summary.items()}


@dataclass(frozen=True)
class Dashboard:
    kpis: Kpis
    top: TopLists
    summary: Dict[str, float]
    records: List[OvertimeRequest]


def build_dashboard(
    accessible: List[OvertimeRequest],
    filters: OvertimeFilters,
    directory: EmployeeDirectory,
    config: CostConfig = DEFAULT_COST_CONFIG,
    *,
    show_cost: bool = True,
) -> Dashboard:
    filtered = apply_filters(accessible, filters, directory)
    return Dashboard(
        kpis=build_kpis(filtered, accessible, directory, config, show_cost=show_cost),
        top=top_lists(filtered, directory),
        summary=collaborator_summary(filtered),
        records=sort_for_table(filtered),
    )
