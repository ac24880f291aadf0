from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from hr_overtime.api.deps import get_workflow
from hr_overtime.errors import RecordNotFound
from hr_overtime.filters import record_cost
from hr_overtime.hours import interval_for_day
from hr_overtime.models import Attachment, OvertimeDraft, OvertimeRequest
from hr_overtime.permissions import Capability
from hr_overtime.workflow import BatchResult, OvertimeWorkflow

router = APIRouter(prefix="/overtime", tags=["overtime"])


class AttachmentIn(BaseModel):
    name: str
    url: str

    def to_attachment(self) -> Attachment:
        return Attachment(name=self.name, url=self.url)


class OvertimeIn(BaseModel):
    for_uid: str = ""
    for_email: str | None = None
    date: date
    start: str = Field(..., description="HH:MM")
    end: str = Field(..., description="HH:MM; at or before start means the next day")
    break_minutes: int = Field(default=0, ge=0)
    type: Literal["50", "100"] = "50"
    night: bool = False
    cost_center: str = ""
    manager_uid: str | None = None
    reason: str = ""
    attachments: list[AttachmentIn] = []
    confirmed: bool = False

    def to_draft(self) -> OvertimeDraft:
        start, end = interval_for_day(self.date, self.start, self.end, allow_overnight=True)
        return OvertimeDraft(
            for_uid=self.for_uid,
            for_email=self.for_email,
            date=self.date,
            start=start,
            end=end,
            reason=self.reason,
            break_minutes=self.break_minutes,
            extra100=self.type == "100",
            night=self.night,
            cost_center=self.cost_center,
            manager_uid=self.manager_uid,
            attachments=[a.to_attachment() for a in self.attachments],
        )


class DecisionIn(BaseModel):
    approve: bool
    adjust_only: bool = False
    notes: str
    start: str | None = None
    end: str | None = None
    break_minutes: int | None = Field(default=None, ge=0)


class ExecutionIn(BaseModel):
    hours_real: float | None = Field(default=None, ge=0)
    notes: str = ""
    attachments: list[AttachmentIn] = []


class PayrollIn(BaseModel):
    ids: list[str] | None = None
    month: str | None = None


class MassApproveIn(BaseModel):
    ids: list[str]
    notes: str


class MassAdjustIn(BaseModel):
    ids: list[str]
    reduction_factor: float
    reason: str


class HoursOut(BaseModel):
    total: float
    h50: float
    h100: float
    h_night: float


class ExecutionOut(BaseModel):
    hours_real: float
    notes: str
    executed_at: datetime | None = None
    executed_by: str | None = None
    acknowledged_at: datetime | None = None
    attachments: list[AttachmentIn] = []


class OvertimeOut(BaseModel):
    id: str
    for_uid: str
    for_email: str | None = None
    collaborator: str
    manager_uid: str
    cost_center: str
    date: date
    start: datetime
    end: datetime
    break_minutes: int
    type: list[str]
    hours: HoursOut
    cost: float | None = None
    status: str
    status_label: str
    reason: str
    decision_notes: str | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None
    executed: ExecutionOut | None = None
    payroll_month: str | None = None
    actions: list[str] = []


class BatchItemOut(BaseModel):
    id: str
    ok: bool
    error: str | None = None


class BatchOut(BaseModel):
    action: str
    succeeded: list[str]
    failed: list[BatchItemOut]


class RankingOut(BaseModel):
    name: str
    hours: float


class DashboardOut(BaseModel):
    pending: int
    hours: float
    cost: float | None = None
    top_employees: list[RankingOut]
    top_cost_centers: list[RankingOut]
    summary: dict[str, float]


def _serialize(record: OvertimeRequest, workflow: OvertimeWorkflow) -> OvertimeOut:
    directory = workflow.session.directory
    hours = record.hours_calc
    cost = None
    if workflow.policy.allows(workflow.actor, Capability.VIEW_COST):
        cost = record_cost(record, directory, workflow.cost_config)
    executed = record.executed
    return OvertimeOut(
        id=record.id,
        for_uid=record.for_uid,
        for_email=record.for_email,
        collaborator=directory.display_name(record),
        manager_uid=record.manager_uid,
        cost_center=record.cost_center,
        date=record.date,
        start=record.start,
        end=record.end,
        break_minutes=record.break_minutes,
        type=record.flags.labels(),
        hours=HoursOut(total=hours.total, h50=hours.h50, h100=hours.h100, h_night=hours.h_night),
        cost=cost,
        status=record.status.value,
        status_label=record.status.label,
        reason=record.reason,
        decision_notes=record.decision_notes,
        decided_by=record.decided_by,
        decided_at=record.decided_at,
        executed=ExecutionOut(
            hours_real=executed.hours_real,
            notes=executed.notes,
            executed_at=executed.executed_at,
            executed_by=executed.executed_by,
            acknowledged_at=executed.acknowledged_at,
            attachments=[AttachmentIn(name=a.name, url=a.url) for a in executed.attachments],
        )
        if executed
        else None,
        payroll_month=record.payroll.month if record.payroll else None,
        actions=workflow.available_actions(record),
    )


def _batch(result: BatchResult) -> BatchOut:
    return BatchOut(
        action=result.action,
        succeeded=result.succeeded,
        failed=[BatchItemOut(id=item.id, ok=item.ok, error=item.error) for item in result.failed],
    )


@router.get("", response_model=list[OvertimeOut])
def list_overtime(workflow: OvertimeWorkflow = Depends(get_workflow)) -> list[OvertimeOut]:
    return [_serialize(record, workflow) for record in workflow.session.visible()]


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(workflow: OvertimeWorkflow = Depends(get_workflow)) -> DashboardOut:
    data = workflow.dashboard()
    return DashboardOut(
        pending=data.kpis.pending,
        hours=data.kpis.hours,
        cost=data.kpis.cost,
        top_employees=[RankingOut(name=name, hours=hours) for name, hours in data.top.employees],
        top_cost_centers=[RankingOut(name=name, hours=hours) for name, hours in data.top.cost_centers],
        summary=data.summary,
    )


@router.get("/export.csv")
def export_csv(ids: str | None = None, workflow: OvertimeWorkflow = Depends(get_workflow)) -> Response:
    record_ids = [value for value in ids.split(",") if value] if ids else None
    content = workflow.export_csv(record_ids)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="overtime.csv"'},
    )


@router.post("", response_model=OvertimeOut, status_code=201)
def create_overtime(payload: OvertimeIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> OvertimeOut:
    record = workflow.create(payload.to_draft(), confirmed=payload.confirmed)
    return _serialize(record, workflow)


@router.post("/payroll", response_model=BatchOut)
def send_to_payroll(payload: PayrollIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> BatchOut:
    return _batch(workflow.send_to_payroll(payload.ids, payload.month))


@router.post("/mass-approve", response_model=BatchOut)
def mass_approve(payload: MassApproveIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> BatchOut:
    return _batch(workflow.mass_approve(payload.ids, payload.notes))


@router.post("/mass-adjust", response_model=BatchOut)
def mass_adjust(payload: MassAdjustIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> BatchOut:
    return _batch(workflow.mass_adjust(payload.ids, payload.reduction_factor, payload.reason))


@router.get("/{record_id}", response_model=OvertimeOut)
def get_overtime(record_id: str, workflow: OvertimeWorkflow = Depends(get_workflow)) -> OvertimeOut:
    record = workflow.session.get(record_id)
    if record_id not in {r.id for r in workflow.session.accessible()}:
        raise RecordNotFound(record_id)
    return _serialize(record, workflow)


@router.put("/{record_id}", response_model=OvertimeOut)
def update_overtime(
    record_id: str, payload: OvertimeIn, workflow: OvertimeWorkflow = Depends(get_workflow)
) -> OvertimeOut:
    record = workflow.update(record_id, payload.to_draft(), confirmed=payload.confirmed)
    return _serialize(record, workflow)


@router.post("/{record_id}/decision", response_model=OvertimeOut)
def decide(record_id: str, payload: DecisionIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> OvertimeOut:
    current = workflow.session.get(record_id)
    start = end = None
    if payload.start or payload.end:
        start, end = interval_for_day(
            current.date,
            payload.start or f"{current.start:%H:%M}",
            payload.end or f"{current.end:%H:%M}",
            allow_overnight=True,
        )
    record = workflow.decide(
        record_id,
        approve=payload.approve,
        adjust_only=payload.adjust_only,
        notes=payload.notes,
        start=start,
        end=end,
        break_minutes=payload.break_minutes,
    )
    return _serialize(record, workflow)


@router.post("/{record_id}/execution", response_model=OvertimeOut)
def execute(record_id: str, payload: ExecutionIn, workflow: OvertimeWorkflow = Depends(get_workflow)) -> OvertimeOut:
    record = workflow.execute(
        record_id,
        hours_real=payload.hours_real,
        notes=payload.notes,
        attachments=[a.to_attachment() for a in payload.attachments],
    )
    return _serialize(record, workflow)


@router.post("/{record_id}/acknowledge", response_model=OvertimeOut)
def acknowledge(record_id: str, workflow: OvertimeWorkflow = Depends(get_workflow)) -> OvertimeOut:
    return _serialize(workflow.acknowledge(record_id), workflow)


@router.get("/{record_id}/authorization.pdf")
def authorization_pdf(record_id: str, workflow: OvertimeWorkflow = Depends(get_workflow)) -> Response:
    content = workflow.authorization_pdf(record_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="authorization-{record_id}.pdf"'},
    )
