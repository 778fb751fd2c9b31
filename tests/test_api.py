"""
Tests for the till HTTP API: cashier actions, member registry, sync,
connectivity and conflict resolution.
"""

import json

import pytest

from core.connectivity import OFFLINE, ONLINE, get_monitor
from core.models import Conflict, Member, Operation, OperationStatus, SyncCursor
from core.services import CashierService
from core.sync import reconcile
from remote_stub import services as remote


def post(client, url, payload=None):
    return client.post(url, data=json.dumps(payload or {}), content_type="application/json")


@pytest.mark.django_db
class TestCashierEndpoints:
    def test_deposit(self, client, alice):
        response = post(client, "/api/cashier/deposit", {"account": str(alice.pk), "amount": 5, "memo": "Kasse"})
        assert response.status_code == 201
        data = response.json()
        assert data["kind"] == "DEPOSIT"
        assert data["status"] == "PENDING"
        assert data["snapshot"] == {str(alice.pk): 5}
        assert Operation.objects.get(op_id=data["op_id"]).memo == "Kasse"

    def test_pay_tab(self, client, alice):
        post(client, "/api/cashier/deposit", {"account": str(alice.pk), "amount": 5})
        response = post(client, "/api/cashier/pay", {"account": str(alice.pk), "amount": 3})
        assert response.status_code == 201
        assert response.json()["snapshot"] == {str(alice.pk): 2}

    def test_transfer_over_floor_is_refused(self, client, alice, bob):
        post(client, "/api/cashier/deposit", {"account": str(alice.pk), "amount": 2})
        response = post(client, "/api/cashier/transfer", {"source": str(alice.pk), "target": str(bob.pk), "amount": 5})

        assert response.status_code == 409
        assert response.json()["error"] == "balance_limit_exceeded"
        assert client.get("/api/snapshot").json() == {str(alice.pk): 2, str(bob.pk): 0}
        assert Operation.objects.count() == 1

    def test_transfer(self, client, alice, bob):
        post(client, "/api/cashier/deposit", {"account": str(alice.pk), "amount": 5})
        response = post(client, "/api/cashier/transfer", {"source": str(alice.pk), "target": str(bob.pk), "amount": 2})
        assert response.status_code == 201
        assert response.json()["snapshot"] == {str(alice.pk): 3, str(bob.pk): 2}

    @pytest.mark.parametrize(
        "payload, status, error",
        [
            ({"account": "00000000-0000-0000-0000-000000000000", "amount": 1}, 404, "unknown_account"),
            ({"account": "not-an-id", "amount": 1}, 404, "unknown_account"),
            ({"account": "ALICE", "amount": 0}, 400, "invalid_amount"),
            ({"account": "ALICE", "amount": "viel"}, 400, "invalid_amount"),
        ],
    )
    def test_validation_errors(self, client, alice, payload, status, error):
        if payload["account"] == "ALICE":
            payload = dict(payload, account=str(alice.pk))
        response = post(client, "/api/cashier/deposit", payload)
        assert response.status_code == status
        assert response.json()["error"] == error
        assert Operation.objects.count() == 0

    def test_transfer_to_self(self, client, alice):
        response = post(client, "/api/cashier/transfer", {"source": str(alice.pk), "target": str(alice.pk), "amount": 1})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_transfer"

    def test_inactive_member(self, client, alice):
        post(client, f"/api/members/{alice.pk}/deactivate")
        response = post(client, "/api/cashier/deposit", {"account": str(alice.pk), "amount": 1})
        assert response.status_code == 404
        assert response.json()["error"] == "inactive_account"

    def test_missing_field_and_bad_json(self, client):
        assert post(client, "/api/cashier/deposit", {"amount": 1}).status_code == 400
        response = client.post("/api/cashier/deposit", data="[1, 2]", content_type="application/json")
        assert response.status_code == 400

    def test_get_not_allowed(self, client):
        assert client.get("/api/cashier/deposit").status_code == 400


@pytest.mark.django_db
class TestMembers:
    def test_seed_is_idempotent(self, client):
        first = post(client, "/api/demo/seed").json()["members"]
        second = post(client, "/api/demo/seed").json()["members"]
        assert [m["display_name"] for m in first] == ["Tisch 1", "Tisch 2", "Vorstand"]
        assert [m["id"] for m in first] == [m["id"] for m in second]
        assert Member.objects.count() == 3

    def test_register_and_list(self, client):
        response = post(client, "/api/members", {"display_name": "Kegelclub", "credit_limit": 20})
        assert response.status_code == 201
        assert response.json()["floor"] == -20
        listed = client.get("/api/members").json()
        assert [m["display_name"] for m in listed] == ["Kegelclub"]

    def test_register_requires_name(self, client):
        assert post(client, "/api/members", {"display_name": ""}).status_code == 400
        response = client.post("/api/members", data="{oops", content_type="application/json")
        assert response.status_code == 400

    def test_deactivate(self, client, alice):
        response = post(client, f"/api/members/{alice.pk}/deactivate")
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_deactivate_unknown(self, client):
        response = post(client, "/api/members/00000000-0000-0000-0000-000000000000/deactivate")
        assert response.status_code == 404


@pytest.mark.django_db
class TestSyncEndpoints:
    def test_sync_while_disabled_reports_unreachable(self, client, settings, alice):
        settings.KASSE_REMOTE_STORE = "disabled"
        CashierService.request_deposit(alice.pk, 5)
        response = post(client, "/api/sync")
        assert response.status_code == 200
        assert response.json()["status"] == "UNREACHABLE"
        assert response.json()["remaining"] == 1

    def test_sync_with_stub(self, client, stub_remote, alice):
        op = CashierService.request_deposit(alice.pk, 5)
        data = post(client, "/api/sync").json()
        assert data["status"] == "COMPLETED"
        assert data["synced"] == [op.op_id]

        status = client.get("/api/sync/status").json()
        assert status["operations"]["synced"] == 1
        assert status["cursor"]["last_op_id"] == op.op_id
        assert status["cursor"]["last_outcome"] == "COMPLETED"

    def test_connectivity_online_triggers_sync(self, client, stub_remote, alice):
        CashierService.request_deposit(alice.pk, 5)
        response = post(client, "/api/connectivity", {"online": True})
        assert response.json() == {"state": ONLINE, "sync_requested": True}
        # eager celery: the reconciliation already ran
        assert Operation.objects.get().status == OperationStatus.SYNCED
        assert SyncCursor.load().last_outcome == "COMPLETED"

    def test_connectivity_offline(self, client, stub_remote):
        post(client, "/api/connectivity", {"online": True})
        response = post(client, "/api/connectivity", {"online": False})
        assert response.json()["state"] == OFFLINE
        assert get_monitor().is_online is False

    def test_connectivity_requires_flag(self, client):
        assert post(client, "/api/connectivity", {}).status_code == 400

    def test_operations_listing_and_export(self, client, alice):
        CashierService.request_deposit(alice.pk, 1)
        CashierService.request_deposit(alice.pk, 2)
        newest_first = client.get("/api/operations").json()
        assert [o["amount"] for o in newest_first] == [2, 1]
        assert client.get("/api/operations?status=synced").json() == []
        exported = client.get("/api/operations/export").json()
        assert [o["amount"] for o in exported] == [1, 2]

    def test_prune(self, client, alice):
        assert post(client, "/api/operations/prune", {"days": 0}).json() == {"removed": 0}
        assert post(client, "/api/operations/prune", {"days": "x"}).status_code == 400


@pytest.mark.django_db
class TestConflictEndpoints:
    def _make_conflict(self, alice, stub_remote):
        CashierService.request_deposit(alice.pk, 5)
        reconcile(remote=stub_remote)
        remote.submit({"op_id": "other-till:1", "kind": "PAY_TAB", "source": str(alice.pk), "amount": 5})
        CashierService.request_pay_tab(alice.pk, 2)
        reconcile(remote=stub_remote)
        return Conflict.objects.get()

    def test_list_open_conflicts(self, client, alice, stub_remote):
        conflict = self._make_conflict(alice, stub_remote)
        data = client.get("/api/conflicts").json()
        assert [c["id"] for c in data] == [conflict.pk]
        assert data[0]["kind"] == "PAY_TAB"
        assert data[0]["amount"] == 2

    def test_discard(self, client, alice, stub_remote):
        conflict = self._make_conflict(alice, stub_remote)
        response = post(client, f"/api/conflicts/{conflict.pk}/resolve", {"action": "discard"})
        assert response.json() == {"id": conflict.pk, "resolution": "DISCARDED", "retry_op_id": None}
        assert client.get("/api/conflicts").json() == []

    def test_retry(self, client, alice, stub_remote):
        conflict = self._make_conflict(alice, stub_remote)
        response = post(client, f"/api/conflicts/{conflict.pk}/resolve", {"action": "retry"})
        data = response.json()
        assert data["resolution"] == "RETRIED"
        assert Operation.objects.get(op_id=data["retry_op_id"]).status == OperationStatus.PENDING

    def test_retry_refused_by_local_floor(self, client, alice, stub_remote):
        conflict = self._make_conflict(alice, stub_remote)
        CashierService.request_pay_tab(alice.pk, 5)
        response = post(client, f"/api/conflicts/{conflict.pk}/resolve", {"action": "retry"})
        assert response.status_code == 409
        assert Conflict.objects.get().resolution == "OPEN"

    def test_unknown_conflict_and_bad_action(self, client, alice, stub_remote):
        conflict = self._make_conflict(alice, stub_remote)
        assert post(client, "/api/conflicts/999/resolve", {"action": "discard"}).status_code == 404
        assert post(client, f"/api/conflicts/{conflict.pk}/resolve", {"action": "shrug"}).status_code == 400
