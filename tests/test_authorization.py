from datetime import datetime

from hr_overtime.authorization import authorization_rows, build_authorization_pdf, render_authorization_pdf
from hr_overtime.models import OvertimeRequest

REQUEST = OvertimeRequest.from_record(
    {
        "id": "r1",
        "forUid": "ana",
        "managerUid": "gus",
        "date": "2024-03-12",
        "start": "2024-03-12T18:00:00",
        "end": "2024-03-12T19:30:00",
        "breakMins": 0,
        "reason": "Inventory count",
        "status": "APROVADA",
        "decisionNotes": "ok",
    }
)


def test_authorization_rows(directory):
    rows = dict(authorization_rows(REQUEST, directory))

    assert rows["Collaborator"] == "Ana Souza"
    assert rows["Manager"] == "Gustavo Reis"
    assert rows["Date"] == "12/03/2024"
    assert rows["Interval"] == "18:00 - 19:30"
    assert rows["Approved hours"] == "1h30m"
    assert rows["Status"] == "Aprovada"
    assert rows["Decision"] == "ok"


def test_missing_manager_and_notes_show_a_dash(directory):
    unmanaged = OvertimeRequest.from_record({**REQUEST.to_record(), "id": "r2", "managerUid": "", "decisionNotes": None})

    rows = dict(authorization_rows(unmanaged, directory))

    assert rows["Manager"] == "—"
    assert rows["Decision"] == "—"


def test_render_returns_pdf_bytes(directory):
    content = render_authorization_pdf(REQUEST, directory, datetime(2024, 3, 20, 9, 0))

    assert content.startswith(b"%PDF")


def test_build_writes_to_a_path(directory, tmp_path):
    target = tmp_path / "docs" / "authorization.pdf"

    build_authorization_pdf(REQUEST, directory, target)

    assert target.read_bytes().startswith(b"%PDF")
