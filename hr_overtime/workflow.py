from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from .activity import ActivityLog, NullActivityLog
from .authorization import render_authorization_pdf
from .cost import DEFAULT_COST_CONFIG, CostConfig, compute_cost
from .csv_io import ImportRow, render_csv
from .errors import ConfirmationRequired, InvalidTransition, PersistenceError, ValidationError
from .filters import Dashboard, build_dashboard
from .hours import compute_hours
from .logging import get_logger
from .models import (
    Attachment,
    ExecutionRecord,
    HoursBreakdown,
    OvertimeDraft,
    OvertimeRequest,
    OvertimeStatus,
    PayrollMarker,
    Record,
    SoftWarning,
)
from .permissions import Capability, PermissionPolicy
from .session import OvertimeSession
from .store import OVERTIME

if TYPE_CHECKING:
    from .config import Settings

logger = get_logger(__name__)

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

ADJUSTABLE_STATUSES = frozenset({OvertimeStatus.PENDENTE_GESTAO, OvertimeStatus.APROVADA})


def same_collaborator(request: OvertimeRequest, draft: OvertimeDraft) -> bool:
    """Uids decide when both sides have one; otherwise emails, ignoring case."""
    if request.for_uid and draft.for_uid:
        return request.for_uid == draft.for_uid
    email = (draft.for_email or "").lower()
    return bool(email) and (request.for_email or "").lower() == email


@dataclass(frozen=True)
class BatchItemResult:
    id: str
    ok: bool
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Per-item outcome of a bulk operation; items are independent of each other."""

    action: str
    items: List[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [item.id for item in self.items if item.ok]

    @property
    def failed(self) -> List[BatchItemResult]:
        return [item for item in self.items if not item.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class Preview:
    hours: HoursBreakdown
    cost: Optional[float]
    warnings: List[SoftWarning]


class OvertimeWorkflow:
    """State machine for overtime requests, acting for the session's actor.

    Every operation checks permission and status before it writes. Writes go
    to the store first; the session cache is only updated after the store
    accepted them.
    """

    def __init__(
        self,
        session: OvertimeSession,
        *,
        policy: Optional[PermissionPolicy] = None,
        cost_config: CostConfig = DEFAULT_COST_CONFIG,
        daily_limit: float = 2.0,
        monthly_limit: float = 40.0,
        activity: Optional[ActivityLog] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.session = session
        self.policy = policy or PermissionPolicy()
        self.cost_config = cost_config
        self.daily_limit = daily_limit
        self.monthly_limit = monthly_limit
        self.activity = activity or NullActivityLog()
        self.clock = clock
        self.log = logger.bind(actor_uid=session.actor.uid or None, actor_role=session.actor.role.value)

    @classmethod
    def from_settings(
        cls,
        session: OvertimeSession,
        settings: "Settings",
        *,
        activity: Optional[ActivityLog] = None,
        policy: Optional[PermissionPolicy] = None,
    ) -> "OvertimeWorkflow":
        return cls(
            session,
            policy=policy,
            cost_config=CostConfig.from_settings(settings),
            daily_limit=settings.daily_limit,
            monthly_limit=settings.monthly_limit,
            activity=activity,
        )

    @property
    def actor(self):
        return self.session.actor

    @property
    def store(self):
        return self.session.store

    def _emit(self, action: str, meta: Dict[str, Any]) -> None:
        try:
            self.activity.record(action, meta, self.actor)
        except Exception:
            self.log.warning("activity_log_failed", action=action, exc_info=True)

    def _write(self, record_id: str, fields: Record) -> OvertimeRequest:
        if not self.store.update_by_id(OVERTIME, record_id, fields):
            raise PersistenceError(f"Store rejected update of overtime request {record_id}")
        current = self.session.get(record_id)
        updated = OvertimeRequest.from_record({**current.to_record(), **fields, "id": record_id})
        self.session.put(updated)
        return updated

    def _now(self) -> str:
        return self.clock().isoformat()

    # -- drafts -----------------------------------------------------------

    def _resolve(self, draft: OvertimeDraft) -> OvertimeDraft:
        employee = self.session.directory.find(draft.for_uid, draft.for_email)
        if employee is None:
            return draft
        return replace(
            draft,
            for_uid=draft.for_uid or employee.uid,
            for_email=draft.for_email or employee.email or None,
            manager_uid=draft.manager_uid or employee.manager_uid,
        )

    def validate(self, draft: OvertimeDraft) -> HoursBreakdown:
        if not draft.for_uid and not draft.for_email:
            raise ValidationError("Select a collaborator")
        if draft.date is None:
            raise ValidationError("Date is required")
        if not (draft.reason or "").strip():
            raise ValidationError("Reason is required")
        if draft.start is None or draft.end is None:
            raise ValidationError("Start and end are required")
        if draft.end <= draft.start:
            raise ValidationError("End must be after start")
        hours = compute_hours(draft.start, draft.end, draft.break_minutes, draft.flags)
        if hours.total <= 0:
            raise ValidationError("Net hours must be greater than zero")
        return hours

    def check_warnings(
        self,
        draft: OvertimeDraft,
        hours: HoursBreakdown,
        exclude_id: Optional[str] = None,
    ) -> List[SoftWarning]:
        warnings = []
        if hours.total > self.daily_limit:
            warnings.append(
                SoftWarning("daily_limit", f"{hours.total}h exceeds the daily limit of {self.daily_limit}h")
            )

        others = [
            r
            for r in self.session.all_records()
            if r.id != exclude_id and same_collaborator(r, draft) and r.status != OvertimeStatus.REJEITADA
        ]
        if any(r.date == draft.date and draft.start < r.end and draft.end > r.start for r in others):
            warnings.append(SoftWarning("overlap", "Overlaps another request for the same collaborator"))

        month_total = sum(
            r.hours_calc.total for r in others if (r.date.year, r.date.month) == (draft.date.year, draft.date.month)
        )
        if month_total + hours.total > self.monthly_limit:
            warnings.append(
                SoftWarning(
                    "monthly_limit",
                    f"{round(month_total + hours.total, 2)}h this month exceeds the monthly limit of {self.monthly_limit}h",
                )
            )
        return warnings

    def preview(self, draft: OvertimeDraft, exclude_id: Optional[str] = None) -> Preview:
        """Live form preview; never writes."""
        draft = self._resolve(draft)
        hours = self.validate(draft)
        cost = None
        if self.policy.allows(self.actor, Capability.VIEW_COST):
            employee = self.session.directory.find(draft.for_uid, draft.for_email)
            cost = compute_cost(hours, employee.salary if employee else 0, self.cost_config)
        return Preview(hours=hours, cost=cost, warnings=self.check_warnings(draft, hours, exclude_id))

    def _confirm(self, draft: OvertimeDraft, hours: HoursBreakdown, confirmed: bool, exclude_id=None) -> None:
        warnings = self.check_warnings(draft, hours, exclude_id)
        if warnings:
            self.log.info("overtime_soft_warnings", codes=[w.code for w in warnings], confirmed=confirmed)
            if not confirmed:
                raise ConfirmationRequired(warnings)

    @staticmethod
    def _draft_fields(draft: OvertimeDraft, hours: HoursBreakdown) -> Record:
        return {
            "forUid": draft.for_uid,
            "forEmail": draft.for_email,
            "managerUid": draft.manager_uid or "",
            "costCenter": draft.cost_center or "",
            "date": draft.date.isoformat(),
            "start": draft.start.isoformat(),
            "end": draft.end.isoformat(),
            "breakMins": draft.break_minutes,
            "type": draft.flags.to_record(),
            "hoursCalc": hours.to_record(),
            "reason": draft.reason.strip(),
            "attachments": [a.to_record() for a in draft.attachments],
        }

    # -- single-record operations -----------------------------------------

    def create(self, draft: OvertimeDraft, confirmed: bool = False) -> OvertimeRequest:
        self.policy.require(self.actor, Capability.CREATE)
        request = self._create(draft, confirmed)
        self._emit("overtime.create", {"id": request.id, "forUid": request.for_uid, "date": request.date.isoformat()})
        return request

    def _create(self, draft: OvertimeDraft, confirmed: bool) -> OvertimeRequest:
        draft = self._resolve(draft)
        hours = self.validate(draft)
        self._confirm(draft, hours, confirmed)

        document = {
            **self._draft_fields(draft, hours),
            "status": OvertimeStatus.PENDENTE_GESTAO.value,
            "createdBy": self.actor.uid or None,
            "createdRole": self.actor.role.value,
            "createdAt": self._now(),
        }
        record_id = self.store.create(OVERTIME, document)
        request = OvertimeRequest.from_record({**document, "id": record_id})
        self.session.put(request)
        self.log.info("overtime_created", id=record_id, for_uid=request.for_uid, total=hours.total)
        return request

    def update(self, record_id: str, draft: OvertimeDraft, confirmed: bool = False) -> OvertimeRequest:
        current = self.session.get(record_id)
        self.policy.require(self.actor, Capability.EDIT, current)
        if current.status != OvertimeStatus.PENDENTE_GESTAO:
            raise InvalidTransition(f"Only pending requests can be edited ({current.status.label})")
        draft = self._resolve(draft)
        hours = self.validate(draft)
        self._confirm(draft, hours, confirmed, exclude_id=record_id)

        updated = self._write(record_id, self._draft_fields(draft, hours))
        self.log.info("overtime_updated", id=record_id, total=hours.total)
        self._emit("overtime.update", {"id": record_id})
        return updated

    def decide(
        self,
        record_id: str,
        *,
        approve: bool,
        notes: str,
        adjust_only: bool = False,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        break_minutes: Optional[int] = None,
    ) -> OvertimeRequest:
        """Approve, reject or adjust a pending request.

        Rejection ignores ``adjust_only``. An adjustment keeps the request
        pending but applies the interval override and the notes. The hours
        are recomputed from the resulting interval in every case.
        """
        current = self.session.get(record_id)
        self.policy.require(self.actor, Capability.DECIDE, current)
        if current.status != OvertimeStatus.PENDENTE_GESTAO:
            raise InvalidTransition(f"Request {record_id} is {current.status.label}, not pending")
        if not (notes or "").strip():
            raise ValidationError("Decision notes are required")

        new_start = start or current.start
        new_end = end or current.end
        new_break = current.break_minutes if break_minutes is None else break_minutes
        hours = compute_hours(new_start, new_end, new_break, current.flags)
        if hours.total <= 0:
            raise ValidationError("Net hours must be greater than zero")

        fields: Record = {
            "start": new_start.isoformat(),
            "end": new_end.isoformat(),
            "breakMins": new_break,
            "hoursCalc": hours.to_record(),
            "decisionNotes": notes.strip(),
            "decidedBy": self.actor.uid or None,
            "decidedAt": self._now(),
        }
        if not approve:
            fields["status"] = OvertimeStatus.REJEITADA.value
        elif not adjust_only:
            fields["status"] = OvertimeStatus.APROVADA.value

        updated = self._write(record_id, fields)
        self.log.info("overtime_decided", id=record_id, status=updated.status.value, adjust_only=adjust_only)
        self._emit("overtime.decision", {"id": record_id, "status": updated.status.value})
        return updated

    def approve(self, record_id: str, notes: str, **interval) -> OvertimeRequest:
        return self.decide(record_id, approve=True, notes=notes, **interval)

    def reject(self, record_id: str, notes: str) -> OvertimeRequest:
        return self.decide(record_id, approve=False, notes=notes)

    def adjust(self, record_id: str, notes: str, **interval) -> OvertimeRequest:
        return self.decide(record_id, approve=True, adjust_only=True, notes=notes, **interval)

    def execute(
        self,
        record_id: str,
        *,
        hours_real: Optional[float] = None,
        notes: str = "",
        attachments: Iterable[Attachment] = (),
    ) -> OvertimeRequest:
        current = self.session.get(record_id)
        self.policy.require(self.actor, Capability.EXECUTE, current)
        if current.status != OvertimeStatus.APROVADA:
            raise InvalidTransition(f"Request {record_id} is {current.status.label}, not approved")

        previous = current.executed
        if hours_real is None:
            hours_real = previous.hours_real if previous and previous.hours_real else current.hours_calc.total
        if hours_real < 0:
            raise ValidationError("Executed hours must not be negative")

        execution = ExecutionRecord(
            hours_real=float(hours_real),
            notes=notes or (previous.notes if previous else ""),
            attachments=(previous.attachments if previous else ()) + tuple(attachments),
            executed_at=self.clock(),
            executed_by=self.actor.uid or None,
        )
        updated = self._write(
            record_id,
            {"status": OvertimeStatus.EXECUTADA.value, "executed": execution.to_record()},
        )
        self.log.info("overtime_executed", id=record_id, hours_real=execution.hours_real)
        self._emit("overtime.executed", {"id": record_id, "hoursReal": execution.hours_real})
        return updated

    def acknowledge(self, record_id: str) -> OvertimeRequest:
        """Stamp the employee's acknowledgement; calling again overwrites the timestamp."""
        current = self.session.get(record_id)
        self.policy.require(self.actor, Capability.ACKNOWLEDGE, current)
        if current.status != OvertimeStatus.EXECUTADA or current.executed is None:
            raise InvalidTransition(f"Request {record_id} has not been executed")

        execution = replace(current.executed, acknowledged_at=self.clock())
        updated = self._write(record_id, {"executed": execution.to_record()})
        self.log.info("overtime_acknowledged", id=record_id)
        self._emit("overtime.acknowledge", {"id": record_id})
        return updated

    # -- bulk operations --------------------------------------------------

    def _target_ids(self, record_ids: Optional[Iterable[str]]) -> List[str]:
        ids = list(record_ids) if record_ids is not None else sorted(self.session.selection)
        if not ids:
            raise ValidationError("No requests selected")
        return ids

    def _run_batch(
        self,
        action: str,
        targets: Iterable[str],
        apply: Callable[[str], Optional[str]],
    ) -> BatchResult:
        result = BatchResult(action=action)
        for target in targets:
            try:
                record_id = apply(target)
            except Exception as exc:
                self.log.warning("batch_item_failed", action=action, target=target, error=str(exc))
                result.items.append(BatchItemResult(id=target, ok=False, error=str(exc)))
            else:
                result.items.append(BatchItemResult(id=record_id or target, ok=True))
        # The store is the source of truth for what went through.
        self.session.refresh()
        self.session.clear_selection()
        self.log.info(
            "batch_completed",
            action=action,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    def default_payroll_month(self) -> str:
        start = self.session.filters.start
        return (start or self.clock()).strftime("%Y-%m")

    def send_to_payroll(
        self,
        record_ids: Optional[Iterable[str]] = None,
        month: Optional[str] = None,
    ) -> BatchResult:
        """Move executed requests to EM_FOLHA for ``month``.

        Without ids the selection is used, and without a selection every
        executed request in the current filtered view. Requests that are not
        executed are reported as failed items and left untouched.
        """
        self.policy.require(self.actor, Capability.SEND_TO_PAYROLL)
        month = month or self.default_payroll_month()
        if not MONTH_PATTERN.match(month):
            raise ValidationError(f"Invalid payroll month {month!r} (expected YYYY-MM)")
        if record_ids is None and not self.session.selection:
            record_ids = [r.id for r in self.session.visible() if r.status == OvertimeStatus.EXECUTADA]
        ids = self._target_ids(record_ids)

        def send(record_id: str) -> str:
            current = self.session.get(record_id)
            if current.status != OvertimeStatus.EXECUTADA:
                raise InvalidTransition(f"Request {record_id} is {current.status.label}, not executed")
            marker = PayrollMarker(month=month, sent_at=self.clock())
            self._write(record_id, {"status": OvertimeStatus.EM_FOLHA.value, "payroll": marker.to_record()})
            return record_id

        result = self._run_batch("overtime.payroll", ids, send)
        self.log.info("payroll_batch_sent", month=month, count=len(result.succeeded))
        self._emit("overtime.payroll", {"ids": result.succeeded, "month": month})
        return result

    def mass_approve(self, record_ids: Optional[Iterable[str]] = None, notes: str = "") -> BatchResult:
        if not (notes or "").strip():
            raise ValidationError("Decision notes are required")
        ids = self._target_ids(record_ids)

        def approve(record_id: str) -> str:
            current = self.session.get(record_id)
            self.policy.require(self.actor, Capability.DECIDE, current)
            if current.status != OvertimeStatus.PENDENTE_GESTAO:
                raise InvalidTransition(f"Request {record_id} is {current.status.label}, not pending")
            self._write(
                record_id,
                {
                    "status": OvertimeStatus.APROVADA.value,
                    "decisionNotes": notes.strip(),
                    "decidedBy": self.actor.uid or None,
                    "decidedAt": self._now(),
                },
            )
            return record_id

        result = self._run_batch("overtime.massApprove", ids, approve)
        self._emit("overtime.massApprove", {"ids": result.succeeded})
        return result

    def mass_adjust(
        self,
        record_ids: Optional[Iterable[str]] = None,
        reduction_factor: float = 0.1,
        reason: str = "",
    ) -> BatchResult:
        """Cut the approved hours of each request by ``reduction_factor``.

        Buckets are scaled by the same ratio as the total, and the end time is
        moved so that end - start - break matches the reduced total.
        """
        if not 0 < reduction_factor < 1:
            raise ValidationError("Reduction factor must be between 0 and 1")
        if not (reason or "").strip():
            raise ValidationError("Reason is required")
        ids = self._target_ids(record_ids)

        def adjust(record_id: str) -> str:
            current = self.session.get(record_id)
            self.policy.require(self.actor, Capability.DECIDE, current)
            if current.status not in ADJUSTABLE_STATUSES:
                raise InvalidTransition(f"Request {record_id} is {current.status.label} and cannot be adjusted")
            hours = current.hours_calc
            reduced = round(hours.total * (1 - reduction_factor), 2)
            ratio = reduced / hours.total if hours.total else 0
            adjusted = replace(hours.scaled(ratio), total=reduced)
            new_end = current.start + timedelta(hours=reduced, minutes=current.break_minutes)
            self._write(
                record_id,
                {
                    "end": new_end.isoformat(),
                    "hoursCalc": adjusted.to_record(),
                    "decisionNotes": f"{current.decision_notes or ''}\nMass adjustment: {reason.strip()}",
                },
            )
            return record_id

        result = self._run_batch("overtime.massAdjust", ids, adjust)
        self._emit("overtime.massAdjust", {"ids": result.succeeded, "factor": reduction_factor})
        return result

    def import_rows(self, rows: Iterable[ImportRow]) -> BatchResult:
        """Create one pending request per row; a bad row never stops the others."""
        self.policy.require(self.actor, Capability.IMPORT)
        rows = list(rows)
        by_label = {f"line {row.line}": row for row in rows}

        def create(label: str) -> str:
            return self._create(by_label[label].to_draft(), confirmed=True).id

        result = self._run_batch("overtime.import", list(by_label), create)
        self.log.info("overtime_import_done", created=len(result.succeeded), skipped=len(result.failed))
        self._emit("overtime.import", {"ids": result.succeeded, "skipped": len(result.failed)})
        return result

    # -- read side --------------------------------------------------------

    def dashboard(self) -> Dashboard:
        return build_dashboard(
            self.session.accessible(),
            self.session.filters,
            self.session.directory,
            self.cost_config,
            show_cost=self.policy.allows(self.actor, Capability.VIEW_COST),
        )

    def available_actions(self, request: OvertimeRequest) -> List[str]:
        allows = self.policy.allows
        actor = self.actor
        status = request.status
        actions = []
        if status == OvertimeStatus.PENDENTE_GESTAO and allows(actor, Capability.EDIT, request):
            actions.append("edit")
        if status == OvertimeStatus.PENDENTE_GESTAO and allows(actor, Capability.DECIDE, request):
            actions.extend(["approve", "reject", "adjust"])
        if status == OvertimeStatus.APROVADA and allows(actor, Capability.EXECUTE, request):
            actions.append("execute")
        if status == OvertimeStatus.EXECUTADA and allows(actor, Capability.SEND_TO_PAYROLL):
            actions.append("send-payroll")
        if allows(actor, Capability.AUTHORIZATION):
            actions.append("authorization")
        if allows(actor, Capability.EXPORT):
            actions.append("export")
        if status == OvertimeStatus.EXECUTADA and allows(actor, Capability.ACKNOWLEDGE, request):
            actions.append("acknowledge")
        return actions

    def export_csv(self, record_ids: Optional[Iterable[str]] = None) -> str:
        """Semicolon CSV of the given requests, or of the current filtered view."""
        self.policy.require(self.actor, Capability.EXPORT)
        if record_ids is None:
            records = self.session.visible()
        else:
            visible = {r.id for r in self.session.accessible()}
            records = [self.session.get(i) for i in record_ids if i in visible]
        if not records:
            raise ValidationError("No records to export")
        self.log.info("overtime_exported", count=len(records))
        return render_csv(records, self.session.directory)

    def authorization_pdf(self, record_id: str, generated_at: Optional[datetime] = None) -> bytes:
        request = self.session.get(record_id)
        self.policy.require(self.actor, Capability.AUTHORIZATION, request)
        self.log.info("authorization_rendered", id=record_id)
        return render_authorization_pdf(request, self.session.directory, generated_at or self.clock())
