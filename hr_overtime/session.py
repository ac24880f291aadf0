from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from .directory import EmployeeDirectory
from .errors import RecordNotFound, ValidationError
from .filters import OvertimeFilters, apply_filters, scope_records, sort_for_table
from .logging import get_logger
from .models import Actor, OvertimeRequest
from .store import EMPLOYEES, OVERTIME, RecordStore

logger = get_logger(__name__)


class OvertimeSession:
    """State owned by one signed-in user: cached records, filters and the multi-select set.

    Nothing here is shared between sessions; the store is the only common state.
    """

    def __init__(
        self,
        store: RecordStore,
        actor: Actor,
        *,
        filters: Optional[OvertimeFilters] = None,
        today: Optional[date] = None,
    ) -> None:
        self.store = store
        self.actor = actor
        self.filters = filters or OvertimeFilters.for_month(today or date.today())
        self.directory = EmployeeDirectory()
        self.records: Dict[str, OvertimeRequest] = {}
        self.selection: Set[str] = set()

    def refresh(self) -> "OvertimeSession":
        self.directory = EmployeeDirectory.from_records(self.store.list_all(EMPLOYEES))
        rows = self.store.list_all(OVERTIME, order_by="date")
        self.records = {}
        for row in rows:
            try:
                request = OvertimeRequest.from_record(row)
            except ValidationError as exc:
                logger.warning("overtime_record_skipped", id=row.get("id"), error=str(exc))
                continue
            self.records[request.id] = request
        logger.debug("session_refreshed", employees=len(self.directory), requests=len(self.records))
        return self

    def get(self, record_id: str) -> OvertimeRequest:
        try:
            return self.records[record_id]
        except KeyError:
            raise RecordNotFound(record_id) from None

    def put(self, request: OvertimeRequest) -> None:
        self.records[request.id] = request

    def all_records(self) -> List[OvertimeRequest]:
        return list(self.records.values())

    def accessible(self) -> List[OvertimeRequest]:
        return scope_records(self.all_records(), self.actor)

    def visible(self) -> List[OvertimeRequest]:
        """Scoped and filtered records in table order."""
        return sort_for_table(apply_filters(self.accessible(), self.filters, self.directory))

    def select(self, record_ids: Iterable[str]) -> None:
        self.selection.update(record_ids)

    def deselect(self, record_ids: Iterable[str]) -> None:
        self.selection.difference_update(record_ids)

    def clear_selection(self) -> None:
        self.selection.clear()
