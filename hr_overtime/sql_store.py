from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .store import Record, sort_records

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True, index=True)
    collection = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, nullable=True)


def build_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


class SqlRecordStore:
    """Record store keeping each document as a JSON payload in one table."""

    def __init__(self, database_url: Optional[str] = None, *, engine: Optional[Engine] = None) -> None:
        if engine is None:
            if not database_url:
                raise ValueError("database_url or engine is required")
            engine = build_engine(database_url)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_all(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        with self.session_scope() as db:
            rows = db.query(Document).filter(Document.collection == collection).order_by(Document.seq.asc()).all()
            records = [{**(row.payload or {}), "id": row.id} for row in rows]
        return sort_records(records, order_by)

    def create(self, collection: str, record: Record) -> str:
        record_id = str(record.get("id") or uuid4().hex)
        payload = {k: v for k, v in record.items() if k != "id"}
        with self.session_scope() as db:
            db.add(Document(id=record_id, collection=collection, payload=payload))
        return record_id

    def update_by_id(self, collection: str, record_id: str, fields: Record) -> bool:
        with self.session_scope() as db:
            row = (
                db.query(Document)
                .filter(Document.collection == collection, Document.id == record_id)
                .one_or_none()
            )
            if row is None:
                return False
            # Reassign so the JSON column is flagged as modified.
            row.payload = {**(row.payload or {}), **fields}
            row.updated_at = _utcnow()
        return True
