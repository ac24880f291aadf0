import csv
import io
from datetime import date, datetime

import pytest

from hr_overtime.csv_io import (
    EXPORT_HEADERS,
    export_csv,
    parse_import_lines,
    read_import_file,
    render_csv,
)
from hr_overtime.errors import ValidationError
from hr_overtime.models import OvertimeRequest

APPROVED = OvertimeRequest.from_record(
    {
        "id": "r1",
        "forUid": "ana",
        "managerUid": "gus",
        "date": "2024-03-12",
        "start": "2024-03-12T21:30:00",
        "end": "2024-03-12T23:30:00",
        "breakMins": 0,
        "type": {"night": True},
        "reason": 'Inventory; "urgent"',
        "status": "EM_FOLHA",
        "decidedBy": "gus",
        "decidedAt": "2024-03-13T10:00:00",
        "payroll": {"month": "2024-03", "sent": True, "sentAt": "2024-03-31T12:00:00"},
    }
)


def read_rows(text):
    return list(csv.DictReader(io.StringIO(text), delimiter=";"))


def test_render_csv_uses_semicolons_and_quotes_every_field(directory):
    text = render_csv([APPROVED], directory)

    header = text.splitlines()[0]
    assert header == ";".join(f'"{name}"' for name in EXPORT_HEADERS)

    [row] = read_rows(text)
    assert row["collaborator"] == "Ana Souza"
    assert row["email"] == "ana@example.com"
    assert row["manager"] == "Gustavo Reis"
    assert row["cost_center"] == "OPS"
    assert row["start"] == "21:30"
    assert row["end"] == "23:30"
    assert row["h50"] == "2.0"
    assert row["h_night"] == "1.5"
    assert row["status"] == "EM_FOLHA"
    assert row["reason"] == 'Inventory; "urgent"'
    assert row["payroll_month"] == "2024-03"


def test_export_csv_writes_file(directory, tmp_path):
    target = tmp_path / "out" / "overtime.csv"

    count = export_csv(target, [APPROVED], directory)

    assert count == 1
    assert read_rows(target.read_text(encoding="utf-8"))[0]["decided_by"] == "gus"


def test_export_csv_refuses_empty_selection(directory, tmp_path):
    with pytest.raises(ValidationError):
        export_csv(tmp_path / "empty.csv", [], directory)


def test_parse_import_lines():
    rows = parse_import_lines(
        [
            "ana;2024-03-14;18:00;20:00;15;100;1;OPS;Inventory; second shift\n",
            "",
            "bruno;2024-03-14;18:00",
        ]
    )

    assert [row.line for row in rows] == [1, 3]
    first, second = rows
    assert first.reason == "Inventory; second shift"
    assert first.complete
    assert not second.complete

    draft = first.to_draft()
    assert draft.date == date(2024, 3, 14)
    assert draft.start == datetime(2024, 3, 14, 18, 0)
    assert draft.break_minutes == 15
    assert draft.extra100 and draft.night
    assert draft.cost_center == "OPS"


def test_import_row_defaults_to_fifty_percent_without_night():
    [row] = parse_import_lines(["ana;2024-03-14;18:00;20:00;;50;0;;Inventory"])

    draft = row.to_draft()

    assert draft.break_minutes == 0
    assert not draft.extra100
    assert not draft.night


@pytest.mark.parametrize(
    "line",
    [
        "bruno;2024-03-14;18:00",
        "ana;14/03/2024;18:00;20:00;0;50;0;OPS;x",
        "ana;2024-03-14;18:00;20:00;ten;50;0;OPS;x",
        "ana;2024-03-14;6pm;20:00;0;50;0;OPS;x",
    ],
)
def test_bad_import_rows_raise_validation_error(line):
    [row] = parse_import_lines([line])

    with pytest.raises(ValidationError):
        row.to_draft()


def test_read_import_file(tmp_path):
    path = tmp_path / "import.csv"
    path.write_text("ana;2024-03-14;18:00;20:00;0;50;0;OPS;Inventory\n\n", encoding="utf-8")

    rows = read_import_file(path)

    assert len(rows) == 1
    assert rows[0].uid == "ana"


def test_export_prefers_the_request_cost_center(directory):
    record = OvertimeRequest.from_record({**APPROVED.to_record(), "id": "r2", "costCenter": "PROJ"})

    [row] = read_rows(render_csv([record], directory))

    assert row["cost_center"] == "PROJ"


def test_import_reads_quoted_fields():
    [row] = parse_import_lines(['ana;2024-03-14;18:00;20:00;0;50;0;"OPS;NORTE";"Inventory; ""urgent"""'])

    assert row.cost_center == "OPS;NORTE"
    assert row.reason == 'Inventory; "urgent"'
