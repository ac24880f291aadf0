from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .models import Employee, OvertimeRequest, Record, Role


class EmployeeDirectory:
    """Read-only employee lookups used for names, salaries and cost centers."""

    def __init__(self, employees: Iterable[Employee] = ()) -> None:
        self._employees: List[Employee] = list(employees)

    @classmethod
    def from_records(cls, records: Iterable[Record]) -> "EmployeeDirectory":
        return cls(Employee.from_record(record) for record in records)

    def __iter__(self) -> Iterator[Employee]:
        return iter(self._employees)

    def __len__(self) -> int:
        return len(self._employees)

    def find(self, uid: Optional[str] = None, email: Optional[str] = None) -> Optional[Employee]:
        if uid:
            for employee in self._employees:
                if employee.uid == uid or employee.id == uid:
                    return employee
        if email:
            lower = email.lower()
            for employee in self._employees:
                if employee.email.lower() == lower:
                    return employee
        return None

    def for_request(self, record: OvertimeRequest) -> Optional[Employee]:
        return self.find(record.for_uid, record.for_email)

    def display_name(self, record: OvertimeRequest) -> str:
        employee = self.for_request(record)
        if employee:
            return employee.name
        return record.for_email or "—"

    def manager_name(self, record: OvertimeRequest) -> str:
        manager = self.find(record.manager_uid) if record.manager_uid else None
        return manager.name if manager else ""

    def managers(self) -> List[Employee]:
        return [e for e in self._employees if e.role in (Role.GESTOR, Role.ADM)]

    def cost_centers(self, records: Iterable[OvertimeRequest] = ()) -> List[str]:
        centers = {e.cost_center for e in self._employees if e.cost_center}
        centers.update(r.cost_center for r in records if r.cost_center)
        return sorted(centers)
