from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ValidationError


Record = Dict[str, Any]


class Role(str, Enum):
    ADM = "ADM"
    RH = "RH"
    GESTOR = "Gestor"
    COLABORADOR = "Colaborador"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Map a stored role string onto a role; anything unknown is a collaborator."""
        if isinstance(value, Role):
            return value
        key = str(value or "").strip().upper()
        for role in cls:
            if role.value.upper() == key:
                return role
        return cls.COLABORADOR


class OvertimeStatus(str, Enum):
    PENDENTE_GESTAO = "PENDENTE_GESTAO"
    APROVADA = "APROVADA"
    REJEITADA = "REJEITADA"
    EXECUTADA = "EXECUTADA"
    EM_FOLHA = "EM_FOLHA"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS.get(self)

    def can_become(self, target: "OvertimeStatus") -> bool:
        return target in TRANSITIONS.get(self, frozenset())

    @classmethod
    def normalize(cls, value: Any) -> "OvertimeStatus":
        if isinstance(value, OvertimeStatus):
            return value
        if not value:
            return cls.PENDENTE_GESTAO
        key = str(value).strip().upper()
        return STATUS_ALIASES.get(key, cls.PENDENTE_GESTAO)


STATUS_LABELS = {
    OvertimeStatus.PENDENTE_GESTAO: "Pendente gestão",
    OvertimeStatus.APROVADA: "Aprovada",
    OvertimeStatus.REJEITADA: "Rejeitada",
    OvertimeStatus.EXECUTADA: "Executada",
    OvertimeStatus.EM_FOLHA: "Em folha",
}

STATUS_ORDER = [
    OvertimeStatus.PENDENTE_GESTAO,
    OvertimeStatus.APROVADA,
    OvertimeStatus.REJEITADA,
    OvertimeStatus.EXECUTADA,
    OvertimeStatus.EM_FOLHA,
]

STATUS_ALIASES = {
    **{status.value: status for status in OvertimeStatus},
    "PENDENTE": OvertimeStatus.PENDENTE_GESTAO,
    "APROVADO": OvertimeStatus.APROVADA,
    "REJEITADO": OvertimeStatus.REJEITADA,
    "NEGADA": OvertimeStatus.REJEITADA,
    "FOLHA": OvertimeStatus.EM_FOLHA,
}

# REJEITADA and EM_FOLHA have no outgoing edges.
TRANSITIONS = {
    OvertimeStatus.PENDENTE_GESTAO: frozenset({OvertimeStatus.APROVADA, OvertimeStatus.REJEITADA}),
    OvertimeStatus.APROVADA: frozenset({OvertimeStatus.EXECUTADA}),
    OvertimeStatus.EXECUTADA: frozenset({OvertimeStatus.EM_FOLHA}),
}

# Statuses whose hours count as approved in totals and KPIs.
APPROVED_STATUSES = frozenset({OvertimeStatus.APROVADA, OvertimeStatus.EXECUTADA, OvertimeStatus.EM_FOLHA})

TYPE_LABELS = {"extra50": "50%", "extra100": "100%", "night": "Noturna"}


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        # Night hours are counted on the local wall clock.
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class DifferentialFlags:
    """Requested differentials: 100% replaces the default 50%, night is independent."""

    extra100: bool = False
    night: bool = False

    @property
    def extra50(self) -> bool:
        return not self.extra100

    @classmethod
    def from_raw(cls, value: Any) -> "DifferentialFlags":
        if isinstance(value, DifferentialFlags):
            return value
        if not value:
            return cls()
        if isinstance(value, dict):
            keys = {key for key, enabled in value.items() if enabled}
        elif isinstance(value, str):
            keys = {part.strip() for part in value.split(",") if part.strip()}
        else:
            keys = {str(part) for part in value}
        return cls(extra100="extra100" in keys, night="night" in keys)

    def to_record(self) -> Record:
        return {"extra50": self.extra50, "extra100": self.extra100, "night": self.night}

    def labels(self) -> List[str]:
        labels = [TYPE_LABELS["extra100"] if self.extra100 else TYPE_LABELS["extra50"]]
        if self.night:
            labels.append(TYPE_LABELS["night"])
        return labels


@dataclass(frozen=True)
class HoursBreakdown:
    total: float = 0.0
    h50: float = 0.0
    h100: float = 0.0
    h_night: float = 0.0

    def scaled(self, ratio: float) -> "HoursBreakdown":
        return HoursBreakdown(
            total=round(self.total * ratio, 2),
            h50=round(self.h50 * ratio, 2),
            h100=round(self.h100 * ratio, 2),
            h_night=round(self.h_night * ratio, 2),
        )

    def to_record(self) -> Record:
        return {"total": self.total, "h50": self.h50, "h100": self.h100, "hNight": self.h_night}

    @classmethod
    def from_record(cls, data: Record) -> "HoursBreakdown":
        return cls(
            total=float(data.get("total") or 0),
            h50=float(data.get("h50") or 0),
            h100=float(data.get("h100") or 0),
            h_night=float(data.get("hNight") or 0),
        )


@dataclass(frozen=True)
class Attachment:
    name: str
    url: str

    def to_record(self) -> Record:
        return {"name": self.name, "url": self.url}

    @classmethod
    def from_record(cls, data: Record) -> "Attachment":
        return cls(name=str(data.get("name") or ""), url=str(data.get("url") or ""))


def _attachments(values: Optional[Iterable[Any]]) -> Tuple[Attachment, ...]:
    items = []
    for value in values or []:
        items.append(value if isinstance(value, Attachment) else Attachment.from_record(value))
    return tuple(items)


@dataclass(frozen=True)
class ExecutionRecord:
    """Hours actually worked; kept apart from the approved hoursCalc."""

    hours_real: float
    notes: str = ""
    attachments: Tuple[Attachment, ...] = ()
    executed_at: Optional[datetime] = None
    executed_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    def to_record(self) -> Record:
        return {
            "done": True,
            "at": _iso(self.executed_at),
            "hoursReal": self.hours_real,
            "notes": self.notes,
            "by": self.executed_by,
            "attachments": [a.to_record() for a in self.attachments],
            "ackByEmployeeAt": _iso(self.acknowledged_at),
        }

    @classmethod
    def from_record(cls, data: Record) -> "ExecutionRecord":
        return cls(
            hours_real=float(data.get("hoursReal") or 0),
            notes=data.get("notes") or "",
            attachments=_attachments(data.get("attachments")),
            executed_at=parse_datetime(data.get("at")),
            executed_by=data.get("by"),
            acknowledged_at=parse_datetime(data.get("ackByEmployeeAt")),
        )


@dataclass(frozen=True)
class PayrollMarker:
    month: str
    sent_at: datetime

    def to_record(self) -> Record:
        return {"month": self.month, "sent": True, "sentAt": self.sent_at.isoformat()}

    @classmethod
    def from_record(cls, data: Record) -> Optional["PayrollMarker"]:
        if not data.get("sent") or not data.get("month"):
            return None
        return cls(month=str(data["month"]), sent_at=parse_datetime(data.get("sentAt")) or datetime.min)


@dataclass(frozen=True)
class Employee:
    id: str
    uid: str
    name: str
    email: str = ""
    manager_uid: str = ""
    cost_center: str = ""
    role: Role = Role.COLABORADOR
    salary: float = 0.0

    @classmethod
    def from_record(cls, data: Record) -> "Employee":
        # Older employee documents use several spellings for the same fields.
        return cls(
            id=str(data.get("id") or ""),
            uid=str(data.get("uid") or data.get("id") or ""),
            name=data.get("name") or data.get("email") or "—",
            email=data.get("email") or "",
            manager_uid=data.get("managerUid") or data.get("manager") or data.get("gestorUid") or "",
            cost_center=data.get("costCenter") or data.get("center") or data.get("centroCusto") or "",
            role=Role.parse(data.get("role")),
            salary=float(data.get("salary") or 0),
        )

    def to_record(self) -> Record:
        return {
            "uid": self.uid,
            "name": self.name,
            "email": self.email,
            "managerUid": self.manager_uid,
            "costCenter": self.cost_center,
            "role": self.role.value,
            "salary": self.salary,
        }


@dataclass(frozen=True)
class Actor:
    """The signed-in user a session acts for."""

    uid: str
    email: str = ""
    role: Role = Role.COLABORADOR


@dataclass(frozen=True)
class SoftWarning:
    code: str
    message: str


@dataclass
class OvertimeDraft:
    """Form input for creating or editing a request."""

    for_uid: str
    date: Optional[date]
    start: datetime
    end: datetime
    reason: str
    break_minutes: int = 0
    extra100: bool = False
    night: bool = False
    cost_center: str = ""
    manager_uid: Optional[str] = None
    for_email: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)

    @property
    def flags(self) -> DifferentialFlags:
        return DifferentialFlags(extra100=self.extra100, night=self.night)


@dataclass(frozen=True)
class OvertimeRequest:
    id: str
    for_uid: str
    date: date
    start: datetime
    end: datetime
    status: OvertimeStatus
    hours_calc: HoursBreakdown
    for_email: Optional[str] = None
    manager_uid: str = ""
    cost_center: str = ""
    break_minutes: int = 0
    flags: DifferentialFlags = DifferentialFlags()
    reason: str = ""
    attachments: Tuple[Attachment, ...] = ()
    decision_notes: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    executed: Optional[ExecutionRecord] = None
    payroll: Optional[PayrollMarker] = None
    created_by: Optional[str] = None
    created_role: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_owned_by(self, actor: Actor) -> bool:
        if actor.uid and self.for_uid == actor.uid:
            return True
        email = (actor.email or "").lower()
        return bool(email) and (self.for_email or "").lower() == email

    def to_record(self) -> Record:
        return {
            "forUid": self.for_uid,
            "forEmail": self.for_email,
            "managerUid": self.manager_uid,
            "costCenter": self.cost_center,
            "date": self.date.isoformat(),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "breakMins": self.break_minutes,
            "type": self.flags.to_record(),
            "hoursCalc": self.hours_calc.to_record(),
            "reason": self.reason,
            "attachments": [a.to_record() for a in self.attachments],
            "status": self.status.value,
            "decisionNotes": self.decision_notes,
            "decidedBy": self.decided_by,
            "decidedAt": _iso(self.decided_at),
            "executed": self.executed.to_record() if self.executed else None,
            "payroll": self.payroll.to_record() if self.payroll else None,
            "createdBy": self.created_by,
            "createdRole": self.created_role,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_record(cls, data: Record) -> "OvertimeRequest":
        from .hours import compute_hours

        start = parse_datetime(data.get("start"))
        end = parse_datetime(data.get("end"))
        try:
            record_date = parse_date(data.get("date")) or parse_date(start)
        except ValueError:
            record_date = parse_date(start)
        if record_date is None:
            raise ValidationError(f"Overtime request {data.get('id') or '?'} has no usable date")
        if start is None:
            start = datetime.combine(record_date, datetime.min.time())
        if end is None:
            end = start
        break_minutes = int(data.get("breakMins") or 0)
        flags = DifferentialFlags.from_raw(data.get("type"))

        cached = data.get("hoursCalc")
        if isinstance(cached, dict) and isinstance(cached.get("total"), (int, float)):
            hours = HoursBreakdown.from_record(cached)
        elif end > start and break_minutes >= 0:
            hours = compute_hours(start, end, break_minutes, flags)
        else:
            hours = HoursBreakdown()

        executed = data.get("executed")
        payroll = data.get("payroll")
        return cls(
            id=str(data.get("id") or ""),
            for_uid=data.get("forUid") or "",
            for_email=data.get("forEmail"),
            manager_uid=data.get("managerUid") or "",
            cost_center=data.get("costCenter") or "",
            date=record_date,
            start=start,
            end=end,
            break_minutes=break_minutes,
            flags=flags,
            reason=data.get("reason") or "",
            attachments=_attachments(data.get("attachments")),
            status=OvertimeStatus.normalize(data.get("status")),
            hours_calc=hours,
            decision_notes=data.get("decisionNotes"),
            decided_by=data.get("decidedBy"),
            decided_at=parse_datetime(data.get("decidedAt")),
            executed=ExecutionRecord.from_record(executed) if isinstance(executed, dict) else None,
            payroll=PayrollMarker.from_record(payroll) if isinstance(payroll, dict) else None,
            created_by=data.get("createdBy"),
            created_role=data.get("createdRole"),
            created_at=parse_datetime(data.get("createdAt")),
        )
