from __future__ import annotations

import copy
import json
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

Record = Dict[str, Any]

OVERTIME = "overtime"
EMPLOYEES = "employees"
ACTIVITIES = "activities"


class RecordStore(Protocol):
    """Document store holding the overtime and employee collections."""

    def list_all(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        """Full scan of a collection; each record carries its ``id``."""

        raise NotImplementedError

    def create(self, collection: str, record: Record) -> str:
        raise NotImplementedError

    def update_by_id(self, collection: str, record_id: str, fields: Record) -> bool:
        """Merge top-level ``fields`` into the record; False when it does not exist."""

        raise NotImplementedError


def sort_records(records: List[Record], order_by: Optional[str]) -> List[Record]:
    if not order_by:
        return records
    return sorted(records, key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")))


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Record]] = defaultdict(dict)
        self._counter = 0

    def list_all(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        records = [{**copy.deepcopy(r), "id": rid} for rid, r in self.collections[collection].items()]
        return sort_records(records, order_by)

    def create(self, collection: str, record: Record) -> str:
        self._counter += 1
        record_id = str(record.get("id") or f"{collection}-{self._counter}")
        payload = {k: v for k, v in copy.deepcopy(record).items() if k != "id"}
        self.collections[collection][record_id] = payload
        return record_id

    def update_by_id(self, collection: str, record_id: str, fields: Record) -> bool:
        existing = self.collections[collection].get(record_id)
        if existing is None:
            return False
        existing.update(copy.deepcopy(fields))
        return True


class JsonFileRecordStore:
    """Record store persisted as one JSON document keyed by collection."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.collections: Dict[str, Dict[str, Record]] = {}
        if path.exists():
            self.load()

    def load(self) -> None:
        content = json.loads(self.path.read_text(encoding="utf-8"))
        self.collections = {
            name: {r["id"]: {k: v for k, v in r.items() if k != "id"} for r in records}
            for name, records in content.items()
        }

    def save(self) -> None:
        payload = {
            name: [{"id": rid, **record} for rid, record in records.items()]
            for name, records in self.collections.items()
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, default=self._date_serializer, indent=2), encoding="utf-8")

    def list_all(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        records = [{**copy.deepcopy(r), "id": rid} for rid, r in self.collections.get(collection, {}).items()]
        return sort_records(records, order_by)

    def create(self, collection: str, record: Record) -> str:
        record_id = str(record.get("id") or uuid4().hex)
        payload = {k: v for k, v in copy.deepcopy(record).items() if k != "id"}
        self.collections.setdefault(collection, {})[record_id] = payload
        self.save()
        return record_id

    def update_by_id(self, collection: str, record_id: str, fields: Record) -> bool:
        existing = self.collections.get(collection, {}).get(record_id)
        if existing is None:
            return False
        existing.update(copy.deepcopy(fields))
        self.save()
        return True

    @staticmethod
    def _date_serializer(value):
        if isinstance(value, date):
            return value.isoformat()
        raise TypeError(f"Type {type(value)} not serializable")
