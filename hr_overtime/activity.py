from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .models import Actor
from .store import ACTIVITIES, RecordStore

ACTIVITY_LOG = Path("data/activity_log.jsonl")


class ActivityLog(Protocol):
    def record(self, action: str, meta: Dict[str, Any], actor: Optional[Actor] = None) -> None:
        raise NotImplementedError


def build_entry(action: str, meta: Dict[str, Any], actor: Optional[Actor] = None) -> Dict[str, Any]:
    return {
        "action": action,
        "meta": meta,
        "actor": {"uid": actor.uid, "email": actor.email, "role": actor.role.value} if actor else None,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


class JsonlActivityLog:
    """Append-only activity log, one JSON document per line."""

    def __init__(self, path: Path = ACTIVITY_LOG):
        self.path = path

    def record(self, action: str, meta: Dict[str, Any], actor: Optional[Actor] = None) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(build_entry(action, meta, actor), default=str) + "\n")

    def read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


class StoreActivityLog:
    """Writes activity entries into the ``activities`` collection of a record store."""

    def __init__(self, store: RecordStore, collection: str = ACTIVITIES):
        self.store = store
        self.collection = collection

    def record(self, action: str, meta: Dict[str, Any], actor: Optional[Actor] = None) -> None:
        self.store.create(self.collection, build_entry(action, meta, actor))


class NullActivityLog:
    def record(self, action: str, meta: Dict[str, Any], actor: Optional[Actor] = None) -> None:
        return None
