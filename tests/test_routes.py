from datetime import datetime

from conftest import FUTURE_DAY
from models import db
from models.audit_log import AuditLog
from models.intervention import Intervention
from models.technician import Technician
from models.user import User
from services import arbitration, booking, interventions


def _actions():
    return [row.action for row in AuditLog.query.order_by(AuditLog.id.asc()).all()]


class TestPlumbing:

    def test_health(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}
        assert res.headers["X-Content-Type-Options"] == "nosniff"

    def test_authentication_required(self, client):
        assert client.get("/slots").status_code == 401
        assert client.post("/requests", json={"motive": "x"}).status_code == 401

    def test_role_gate(self, login, client_user):
        client = login(client_user)
        res = client.post("/slots/generate", json={})
        assert res.status_code == 403

    def test_admin_passes_role_gates(self, login, make_user, technician):
        client = login(make_user("ADMIN"))
        res = client.post("/slots/generate", json={
            "technician_id": technician.id, "date_start": "2099-03-02",
            "hour_start": "08:00", "hour_end": "10:00",
        })
        assert res.status_code == 201
        assert res.get_json() == {"created": 2}

    def test_csrf_required_for_logged_in_writes(self, login, responsable, technician):
        client = login(responsable, csrf=False)
        res = client.post("/slots/generate", json={"technician_id": technician.id})
        assert res.status_code == 403
        assert res.get_json()["code"] == "csrf_failed"

    def test_csrf_cookie_handed_out(self, login, client_user):
        client = login(client_user, csrf=False)
        res = client.get("/requests/me")
        assert res.status_code == 200
        assert "csrf_token=" in res.headers.get("Set-Cookie", "")


class TestSlotRoutes:

    def test_generate_then_list_free(self, login, responsable, technician):
        client = login(responsable)
        res = client.post("/slots/generate", json={
            "technician_id": technician.id, "date_start": "2099-03-02", "date_end": "2099-03-02",
            "hour_start": "08:00", "hour_end": "12:00", "duration_minutes": 60,
        })
        assert res.status_code == 201
        assert res.get_json()["created"] == 4
        assert "SLOTS_GENERATE" in _actions()

        res = client.get(f"/slots?technician_id={technician.id}&date=2099-03-02&free_only=1")
        assert [s["start_time"] for s in res.get_json()] == [
            "2099-03-02T08:00:00", "2099-03-02T09:00:00", "2099-03-02T10:00:00", "2099-03-02T11:00:00",
        ]

    def test_invalid_schedule_rendered(self, login, responsable, technician):
        client = login(responsable)
        res = client.post("/slots/generate", json={
            "technician_id": technician.id, "date_start": "2099-03-02",
            "hour_start": "12:00", "hour_end": "08:00",
        })
        assert res.status_code == 400
        assert res.get_json()["code"] == "invalid_schedule"

    def test_bad_date_is_400(self, login, responsable, technician):
        client = login(responsable)
        res = client.post("/slots/generate", json={
            "technician_id": technician.id, "date_start": "tomorrow", "hour_start": "08:00", "hour_end": "12:00",
        })
        assert res.status_code == 400

    def test_delete_slot(self, login, responsable, morning_slots):
        client = login(responsable)
        assert client.delete(f"/slots/{morning_slots[0].id}").status_code == 200
        assert client.delete(f"/slots/{morning_slots[0].id}").status_code == 404


class TestBookingFlow:

    def test_submit_accept_execute(self, login, client_user, responsable, technician, morning_slots, make_part):
        part = make_part(unit_price=20, stock=5)
        slot_id = morning_slots[1].id

        client = login(client_user)
        res = client.post("/requests", json={
            "motive": "Dishwasher leaks", "desired_date": "2099-03-02", "slot_id": slot_id,
            "preferred_moment": "MORNING",
        })
        assert res.status_code == 201
        request_id = res.get_json()["id"]
        assert res.get_json()["status"] == "PENDING"

        res = client.post("/requests", json={"motive": "Again", "desired_date": "2099-03-02"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "active_request_exists"

        client = login(responsable)
        res = client.get("/requests/pending")
        assert [r["id"] for r in res.get_json()] == [request_id]
        res = client.post(f"/requests/{request_id}/accept", json={"labor_amount": 50})
        assert res.status_code == 200
        intervention_id = res.get_json()["intervention_id"]

        client = login(_tech_user(technician))
        assert client.post(f"/interventions/{intervention_id}/start").status_code == 200
        res = client.post(f"/interventions/{intervention_id}/parts", json={"part_id": part.id, "quantity": 2})
        assert res.status_code == 201
        assert res.get_json()["intervention"]["total_amount"] == 90
        res = client.post(f"/interventions/{intervention_id}/complete")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "COMPLETED"
        assert body["invoice_number"] == f"INV-{intervention_id:06d}"
        assert body["bill"]["total_amount"] == 90

        res = client.post(f"/interventions/{intervention_id}/parts", json={"part_id": part.id, "quantity": 1})
        assert res.status_code == 409
        assert res.get_json()["code"] == "intervention_closed"

        client = login(responsable)
        res = client.post(f"/interventions/{intervention_id}/pay", json={"reference": "CB-1"})
        assert res.status_code == 201
        assert res.get_json()["amount"] == 90

        assert {"REQUEST_SUBMIT", "REQUEST_ACCEPT", "INTERVENTION_START", "PART_ADD",
                "INTERVENTION_COMPLETE", "INTERVENTION_PAID"} <= set(_actions())

    def test_accept_slot_taken(self, login, make_user, responsable, morning_slots, collaborators):
        slot_id = morning_slots[0].id
        first = booking.submit_request(make_user("CLIENT").id, "A", FUTURE_DAY, collaborators, slot_id=slot_id)
        second = booking.submit_request(make_user("CLIENT").id, "B", FUTURE_DAY, collaborators, slot_id=slot_id)
        arbitration.accept(second.id, collaborators, responsable_id=responsable.id)

        client = login(responsable)
        res = client.post(f"/requests/{first.id}/accept", json={})

        assert res.status_code == 409
        assert res.get_json()["code"] == "slot_already_reserved"
        assert "REQUEST_ACCEPT_FAIL_SLOT_TAKEN" in _actions()

    def test_refuse_requires_reason(self, login, client_user, responsable, collaborators):
        req = booking.submit_request(client_user.id, "A", FUTURE_DAY, collaborators)
        client = login(responsable)

        assert client.post(f"/requests/{req.id}/refuse", json={}).status_code == 400
        res = client.post(f"/requests/{req.id}/refuse", json={"reason": "Not covered area"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "REFUSED"

    def test_client_cancels_own_request(self, login, client_user, collaborators):
        req = booking.submit_request(client_user.id, "A", FUTURE_DAY, collaborators)
        client = login(client_user)

        res = client.post(f"/requests/{req.id}/cancel")
        assert res.status_code == 200
        assert res.get_json()["status"] == "CANCELLED"
        assert client.post(f"/requests/{req.id}/cancel").get_json()["code"] == "invalid_state"


class TestInterventionRoutes:

    def test_other_technician_cannot_mutate(self, login, technician, make_technician, collaborators):
        intervention = interventions.create_intervention(None, technician.id, _at(), collaborators)
        stranger = make_technician("Stranger")

        client = login(_tech_user(stranger))
        assert client.post(f"/interventions/{intervention.id}/start").status_code == 403
        assert client.get(f"/interventions/{intervention.id}").status_code == 403

    def test_technician_lists_only_own(self, login, technician, make_technician, collaborators):
        mine = interventions.create_intervention(None, technician.id, _at(), collaborators)
        interventions.create_intervention(None, make_technician("Other").id, _at(), collaborators)

        client = login(_tech_user(technician))
        res = client.get("/interventions")
        assert [i["id"] for i in res.get_json()] == [mine.id]

    def test_illegal_transition_rendered(self, login, responsable, technician, collaborators):
        intervention = interventions.create_intervention(None, technician.id, _at(), collaborators)
        client = login(responsable)

        res = client.post(f"/interventions/{intervention.id}/complete")
        assert res.status_code == 409
        assert res.get_json()["code"] == "invalid_transition"

    def test_negative_labor_rendered(self, login, responsable, technician, collaborators):
        intervention = interventions.create_intervention(None, technician.id, _at(), collaborators)
        client = login(responsable)

        res = client.put(f"/interventions/{intervention.id}/labor", json={"labor_amount": -5})
        assert res.status_code == 400
        assert res.get_json()["code"] == "validation_failed"

    def test_reassign_is_responsable_only(self, login, technician, make_technician, collaborators):
        intervention = interventions.create_intervention(None, technician.id, _at(), collaborators)
        other = make_technician("Other")

        client = login(_tech_user(technician))
        res = client.put(f"/interventions/{intervention.id}/technician", json={"technician_id": other.id})
        assert res.status_code == 403
        assert db.session.get(Intervention, intervention.id).technician_id == technician.id


class TestInventoryRoutes:

    def test_insufficient_stock_rendered(self, login, responsable, technician, make_part, collaborators):
        intervention = interventions.create_intervention(None, technician.id, _at(), collaborators)
        part = make_part(stock=1)
        client = login(responsable)

        res = client.post(f"/interventions/{intervention.id}/parts", json={"part_id": part.id, "quantity": 3})

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "insufficient_stock"
        assert body["details"]["available"] == 1
        assert "PART_ADD_FAIL_STOCK" in _actions()

    def test_create_restock_and_history(self, login, responsable):
        client = login(responsable)
        res = client.post("/parts", json={"name": "Heater", "reference": "HTR-9", "unit_price": 4200, "stock": 2})
        assert res.status_code == 201
        part = res.get_json()
        assert part["low_stock"] is True

        res = client.post(f"/parts/{part['id']}/restock", json={"quantity": 20})
        assert res.get_json()["stock"] == 22

        res = client.get(f"/parts/{part['id']}/movements")
        assert [m["kind"] for m in res.get_json()] == ["IN", "IN"]
        assert client.get("/parts/low-stock").get_json() == []

    def test_adjust_requires_reason(self, login, responsable, make_part):
        part = make_part(stock=5)
        client = login(responsable)
        assert client.post(f"/parts/{part.id}/adjust", json={"stock": 2}).status_code == 400
        res = client.post(f"/parts/{part.id}/adjust", json={"stock": 2, "reason": "Count"})
        assert res.get_json()["stock"] == 2

    def test_technician_cannot_restock(self, login, technician, make_part):
        part = make_part(stock=5)
        client = login(_tech_user(technician))
        assert client.get("/parts").status_code == 200
        assert client.post(f"/parts/{part.id}/restock", json={"quantity": 1}).status_code == 403


class TestAdminRoutes:

    def test_audit_logs_admin_only(self, login, make_user, responsable, technician):
        client = login(responsable)
        client.post("/slots/generate", json={
            "technician_id": technician.id, "date_start": "2099-03-02", "hour_start": "08:00", "hour_end": "09:00",
        })
        assert client.get("/admin/audit-logs").status_code == 403

        client = login(make_user("ADMIN"))
        res = client.get("/admin/audit-logs?action=SLOTS_GENERATE")
        assert res.status_code == 200
        rows = res.get_json()
        assert len(rows) == 1
        assert rows[0]["user_id"] == responsable.id
        assert rows[0]["metadata"]["created"] == 1



def _tech_user(technician):
    return db.session.get(User, db.session.get(Technician, technician.id).user_id)


def _at():
    return datetime(2099, 3, 2, 9, 0)
