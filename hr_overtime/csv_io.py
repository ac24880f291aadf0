from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, List

from .directory import EmployeeDirectory
from .errors import ValidationError
from .hours import interval_for_day
from .models import OvertimeDraft, OvertimeRequest, parse_date

DELIMITER = ";"

EXPORT_HEADERS = [
    "collaborator",
    "email",
    "manager",
    "cost_center",
    "date",
    "start",
    "end",
    "break_minutes",
    "h50",
    "h100",
    "h_night",
    "status",
    "reason",
    "decided_by",
    "decided_at",
    "payroll_month",
]

IMPORT_COLUMNS = ["uid", "date", "start", "end", "break", "type", "night", "cost_center", "reason"]


def export_row(record: OvertimeRequest, directory: EmployeeDirectory) -> dict:
    employee = directory.for_request(record)
    hours = record.hours_calc
    return {
        "collaborator": directory.display_name(record),
        "email": (employee.email if employee else "") or record.for_email or "",
        "manager": directory.manager_name(record),
        "cost_center": record.cost_center or (employee.cost_center if employee else ""),
        "date": record.date.isoformat(),
        "start": record.start.strftime("%H:%M"),
        "end": record.end.strftime("%H:%M"),
        "break_minutes": record.break_minutes,
        "h50": hours.h50,
        "h100": hours.h100,
        "h_night": hours.h_night,
        "status": record.status.value,
        "reason": record.reason,
        "decided_by": record.decided_by or "",
        "decided_at": record.decided_at.isoformat() if record.decided_at else "",
        "payroll_month": record.payroll.month if record.payroll else "",
    }


def write_csv(handle: IO[str], records: Iterable[OvertimeRequest], directory: EmployeeDirectory) -> int:
    writer = csv.DictWriter(handle, fieldnames=EXPORT_HEADERS, delimiter=DELIMITER, quoting=csv.QUOTE_ALL)
    writer.writeheader()
    count = 0
    for record in records:
        writer.writerow(export_row(record, directory))
        count += 1
    return count


def export_csv(path: Path, records: Iterable[OvertimeRequest], directory: EmployeeDirectory) -> int:
    records = list(records)
    if not records:
        raise ValidationError("No records to export")
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        return write_csv(handle, records, directory)


def render_csv(records: Iterable[OvertimeRequest], directory: EmployeeDirectory) -> str:
    buffer = io.StringIO()
    write_csv(buffer, records, directory)
    return buffer.getvalue()


@dataclass(frozen=True)
class ImportRow:
    """One line of a batch import file: uid;date;start;end;break;type(50|100);night(0|1);costCenter;reason."""

    line: int
    uid: str
    date: str
    start: str
    end: str
    break_minutes: str = ""
    type: str = ""
    night: str = ""
    cost_center: str = ""
    reason: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.uid and self.date and self.start and self.end)

    def to_draft(self) -> OvertimeDraft:
        if not self.complete:
            raise ValidationError(f"Line {self.line}: collaborator, date, start and end are required")
        try:
            day = parse_date(self.date)
        except ValueError:
            raise ValidationError(f"Line {self.line}: invalid date {self.date!r}")
        try:
            break_minutes = int(self.break_minutes or 0)
        except ValueError:
            raise ValidationError(f"Line {self.line}: invalid break {self.break_minutes!r}")
        start, end = interval_for_day(day, self.start, self.end)
        return OvertimeDraft(
            for_uid=self.uid,
            date=day,
            start=start,
            end=end,
            reason=self.reason,
            break_minutes=break_minutes,
            extra100=self.type == "100",
            night=self.night == "1" or self.night.lower() == "true",
            cost_center=self.cost_center,
        )


def parse_import_lines(lines: Iterable[str]) -> List[ImportRow]:
    rows: List[ImportRow] = []
    reader = csv.reader(lines, delimiter=DELIMITER)
    last = len(IMPORT_COLUMNS) - 1
    for raw in reader:
        if not any(part.strip() for part in raw):
            continue
        # Unquoted semicolons past the last column stay in the reason.
        cols = [part.strip() for part in raw[:last]]
        cols += [""] * (last - len(cols))
        cols.append(DELIMITER.join(raw[last:]).strip())
        rows.append(
            ImportRow(
                line=reader.line_num,
                uid=cols[0],
                date=cols[1],
                start=cols[2],
                end=cols[3],
                break_minutes=cols[4],
                type=cols[5],
                night=cols[6],
                cost_center=cols[7],
                reason=cols[8],
            )
        )
    return rows


def read_import_file(path: Path) -> List[ImportRow]:
    with path.open(encoding="utf-8", newline="") as handle:
        return parse_import_lines(handle)
