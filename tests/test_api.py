import pytest
from fastapi.testclient import TestClient

from hr_overtime import __version__
from hr_overtime.api.deps import get_store
from hr_overtime.api.main import app
from hr_overtime.store import ACTIVITIES


def actor(uid, role):
    return {"X-Actor-Uid": uid, "X-Actor-Email": f"{uid}@example.com", "X-Actor-Role": role}


ADM = actor("adm", "ADM")
RH = actor("rh", "RH")
GUS = actor("gus", "Gestor")
HEL = actor("hel", "Gestor")
ANA = actor("ana", "Colaborador")
BRUNO = actor("bruno", "Colaborador")

ALL_DATES = {"all_dates": "true"}

DRAFT = {
    "for_uid": "ana",
    "date": "2024-03-12",
    "start": "18:00",
    "end": "20:00",
    "reason": "Inventory count",
}


@pytest.fixture
def client(sql_store):
    app.dependency_overrides[get_store] = lambda: sql_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create(client, **changes):
    response = client.post("/overtime", json={**DRAFT, "confirmed": True, **changes}, headers=ADM)
    assert response.status_code == 201, response.text
    return response.json()


def approve(client, record_id, headers=GUS):
    response = client.post(f"/overtime/{record_id}/decision", json={"approve": True, "notes": "ok"}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def execute(client, record_id):
    response = client.post(f"/overtime/{record_id}/execution", json={}, headers=GUS)
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_root(client):
    assert client.get("/").json()["message"] == "HR overtime API running"


def test_create_returns_the_request(client, sql_store):
    response = client.post("/overtime", json=DRAFT, headers=ADM)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDENTE_GESTAO"
    assert body["status_label"] == "Pendente gestão"
    assert body["collaborator"] == "Ana Souza"
    assert body["manager_uid"] == "gus"
    assert body["hours"] == {"total": 2.0, "h50": 2.0, "h100": 0.0, "h_night": 0.0}
    assert body["cost"] == 30.0
    assert body["type"] == ["50%"]
    assert body["actions"] == ["edit", "approve", "reject", "adjust", "authorization", "export"]
    assert [entry["action"] for entry in sql_store.list_all(ACTIVITIES)] == ["overtime.create"]


def test_soft_warnings_need_confirmation(client):
    draft = {**DRAFT, "end": "21:00"}

    response = client.post("/overtime", json=draft, headers=ADM)

    assert response.status_code == 409
    assert [w["code"] for w in response.json()["warnings"]] == ["daily_limit"]
    assert client.post("/overtime", json={**draft, "confirmed": True}, headers=ADM).status_code == 201


@pytest.mark.parametrize(
    "changes",
    [{"reason": ""}, {"start": "6pm"}, {"start": "18:00", "end": "19:00", "break_minutes": 60}],
)
def test_invalid_drafts_are_unprocessable(client, changes):
    response = client.post("/overtime", json={**DRAFT, **changes}, headers=ADM)

    assert response.status_code == 422


@pytest.mark.parametrize("headers", [GUS, ANA])
def test_only_admin_and_hr_create(client, headers):
    assert client.post("/overtime", json=DRAFT, headers=headers).status_code == 403


def test_list_is_scoped_to_the_actor(client):
    record = create(client)
    create(client, for_uid="carla")

    def listed(headers, params=ALL_DATES):
        response = client.get("/overtime", params=params, headers=headers)
        assert response.status_code == 200
        return [item["for_uid"] for item in response.json()]

    assert sorted(listed(RH)) == ["ana", "carla"]
    assert listed(GUS) == ["ana"]
    assert listed(HEL) == ["carla"]
    assert listed(ANA) == ["ana"]
    assert listed(BRUNO) == []
    assert listed(ADM, {}) == []
    assert listed(ADM, {"start": "2024-03-01", "end": "2024-03-31", "employee": "carla"}) == ["carla"]
    assert client.get("/overtime", params=ALL_DATES, headers=ANA).json()[0]["cost"] is None
    assert client.get(f"/overtime/{record['id']}", headers=ANA).json()["id"] == record["id"]


def test_get_hides_requests_outside_scope(client):
    record = create(client)

    assert client.get(f"/overtime/{record['id']}", headers=BRUNO).status_code == 404
    assert client.get("/overtime/missing", headers=ADM).status_code == 404


def test_update_pending_request(client):
    record = create(client)

    response = client.put(f"/overtime/{record['id']}", json={**DRAFT, "end": "19:30"}, headers=RH)

    assert response.status_code == 200
    assert response.json()["hours"]["total"] == 1.5
    assert client.put(f"/overtime/{record['id']}", json=DRAFT, headers=GUS).status_code == 403


def test_decision_flow(client):
    record = create(client)
    path = f"/overtime/{record['id']}/decision"

    assert client.post(path, json={"approve": True, "notes": "ok"}, headers=HEL).status_code == 403
    assert client.post(path, json={"approve": True, "notes": ""}, headers=GUS).status_code == 422

    adjusted = client.post(path, json={"approve": True, "adjust_only": True, "notes": "1h", "end": "19:00"}, headers=GUS)
    assert adjusted.json()["status"] == "PENDENTE_GESTAO"
    assert adjusted.json()["hours"]["total"] == 1.0

    body = approve(client, record["id"])
    assert body["status"] == "APROVADA"
    assert body["decided_by"] == "gus"
    assert body["actions"] == ["execute", "authorization", "export"]

    assert client.post(path, json={"approve": False, "notes": "late"}, headers=GUS).status_code == 409


def test_execution_and_acknowledgement(client):
    record = create(client)
    approve(client, record["id"])

    response = client.post(
        f"/overtime/{record['id']}/execution",
        json={"hours_real": 1.5, "notes": "left early", "attachments": [{"name": "ponto", "url": "https://x.test/p"}]},
        headers=GUS,
    )
    assert response.status_code == 200
    executed = response.json()["executed"]
    assert executed["hours_real"] == 1.5
    assert executed["attachments"] == [{"name": "ponto", "url": "https://x.test/p"}]
    assert response.json()["hours"]["total"] == 2.0

    assert client.post(f"/overtime/{record['id']}/acknowledge", headers=BRUNO).status_code == 403
    ack = client.post(f"/overtime/{record['id']}/acknowledge", headers=ANA)
    assert ack.status_code == 200
    assert ack.json()["executed"]["acknowledged_at"] is not None


def test_execution_requires_approval(client):
    record = create(client)

    response = client.post(f"/overtime/{record['id']}/execution", json={}, headers=ADM)

    assert response.status_code == 409


def test_send_to_payroll(client):
    done = create(client)
    approve(client, done["id"])
    execute(client, done["id"])
    waiting = create(client, date="2024-03-13")

    assert client.post("/overtime/payroll", json={"ids": [done["id"]]}, headers=GUS).status_code == 403
    bad = client.post("/overtime/payroll", json={"ids": [done["id"]], "month": "2024-3"}, headers=RH)
    assert bad.status_code == 422

    response = client.post("/overtime/payroll", json={"ids": [done["id"], waiting["id"]], "month": "2024-03"}, headers=RH)

    assert response.status_code == 200
    body = response.json()
    assert body["action"] == "overtime.payroll"
    assert body["succeeded"] == [done["id"]]
    assert [item["id"] for item in body["failed"]] == [waiting["id"]]
    assert client.get(f"/overtime/{done['id']}", headers=RH).json()["payroll_month"] == "2024-03"


def test_mass_operations(client):
    first = create(client, start="08:00", end="18:00")
    second = create(client, date="2024-03-13")
    other = create(client, for_uid="carla", date="2024-03-14")

    adjusted = client.post(
        "/overtime/mass-adjust",
        json={"ids": [first["id"]], "reduction_factor": 0.2, "reason": "budget"},
        headers=ADM,
    ).json()
    assert adjusted["succeeded"] == [first["id"]]
    reread = client.get(f"/overtime/{first['id']}", headers=ADM).json()
    assert reread["hours"]["total"] == 8.0
    assert reread["end"] == "2024-03-12T16:00:00"

    response = client.post(
        "/overtime/mass-approve",
        json={"ids": [first["id"], second["id"], other["id"]], "notes": "ok"},
        headers=GUS,
    )
    body = response.json()
    assert sorted(body["succeeded"]) == sorted([first["id"], second["id"]])
    assert [item["id"] for item in body["failed"]] == [other["id"]]

    bad = client.post("/overtime/mass-adjust", json={"ids": [second["id"]], "reduction_factor": 1, "reason": "x"}, headers=ADM)
    assert bad.status_code == 422


def test_dashboard(client):
    record = create(client)
    approve(client, record["id"])
    create(client, for_uid="bruno")

    admin = client.get("/overtime/dashboard", params=ALL_DATES, headers=ADM).json()
    own = client.get("/overtime/dashboard", params=ALL_DATES, headers=ANA).json()

    assert admin["pending"] == 1
    assert admin["hours"] == 2.0
    assert admin["cost"] == 30.0
    assert admin["top_employees"][0] == {"name": "Ana Souza", "hours": 2.0}
    assert admin["summary"]["total"] == 4.0
    assert own["cost"] is None
    assert own["pending"] == 0


def test_export_csv(client):
    record = create(client)

    response = client.get("/overtime/export.csv", params={**ALL_DATES, "ids": record["id"]}, headers=ADM)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert '"Ana Souza"' in response.text
    assert client.get("/overtime/export.csv", params=ALL_DATES, headers=ANA).status_code == 403
    assert client.get("/overtime/export.csv", headers=ADM).status_code == 422


def test_authorization_pdf(client):
    record = create(client)

    response = client.get(f"/overtime/{record['id']}/authorization.pdf", headers=GUS)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")
    assert client.get(f"/overtime/{record['id']}/authorization.pdf", headers=ANA).status_code == 403
