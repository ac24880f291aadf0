from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, List, Optional, Union

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .directory import EmployeeDirectory
from .hours import format_hours
from .models import OvertimeRequest

COMPANY_NAME = "Casa Rosa"

Output = Union[Path, BinaryIO]


def authorization_rows(record: OvertimeRequest, directory: EmployeeDirectory) -> List[List[str]]:
    return [
        ["Collaborator", directory.display_name(record)],
        ["Manager", directory.manager_name(record) or "—"],
        ["Date", record.date.strftime("%d/%m/%Y")],
        ["Interval", f"{record.start:%H:%M} - {record.end:%H:%M}"],
        ["Break", f"{record.break_minutes} min"],
        ["Approved hours", format_hours(record.hours_calc.total)],
        ["Status", record.status.label],
        ["Reason", record.reason or "—"],
        ["Decision", record.decision_notes or "—"],
    ]


def _build_story(record: OvertimeRequest, directory: EmployeeDirectory, generated_at: datetime) -> List[Any]:
    styles = getSampleStyleSheet()
    muted = ParagraphStyle("authorization_muted", parent=styles["Normal"], fontSize=9, textColor=colors.grey)

    story: List[Any] = [
        Paragraph("Overtime Authorization", styles["Title"]),
        Paragraph(f"{COMPANY_NAME} - formal approval record.", muted),
        HRFlowable(width="100%"),
        Spacer(1, 10),
    ]

    table = Table(authorization_rows(record, directory), colWidths=[1.8 * inch, 4.9 * inch])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 6),
                ("RIGHTPADDING", (0, 0), (-1, -1), 6),
                ("TOPPADDING", (0, 0), (-1, -1), 5),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )
    story.append(table)
    story.append(Spacer(1, 12))
    story.append(Paragraph(f"Generated at {generated_at:%d/%m/%Y %H:%M}.", muted))
    return story


def build_authorization_pdf(
    record: OvertimeRequest,
    directory: EmployeeDirectory,
    output: Output,
    generated_at: Optional[datetime] = None,
) -> Output:
    if isinstance(output, Path):
        output.parent.mkdir(parents=True, exist_ok=True)
        target: Any = str(output)
    else:
        target = output

    doc = SimpleDocTemplate(
        target,
        pagesize=A4,
        title=f"Overtime authorization {record.id}",
        leftMargin=0.7 * inch,
        rightMargin=0.7 * inch,
        topMargin=0.7 * inch,
        bottomMargin=0.7 * inch,
    )
    doc.build(_build_story(record, directory, generated_at or datetime.now()))
    return output


def render_authorization_pdf(
    record: OvertimeRequest,
    directory: EmployeeDirectory,
    generated_at: Optional[datetime] = None,
) -> bytes:
    buffer = io.BytesIO()
    build_authorization_pdf(record, directory, buffer, generated_at)
    return buffer.getvalue()
