"""
Tests for the Ledger Store.

Covers validation (amount, accounts, balance floor), atomic transfers,
snapshots, and replay determinism of rebuild().
"""

import pytest
from django.utils import timezone

from core.errors import (
    BalanceLimitExceeded,
    InactiveAccount,
    InvalidAmount,
    InvalidTransfer,
    UnknownAccount,
)
from core.ledger import LedgerStore
from core.models import Member, Operation, OperationKind
from core.oplog import OperationLog
from core.services import CashierService, new_op_id


def _op(kind, source, amount, target=None):
    return Operation(
        op_id=new_op_id(),
        kind=kind,
        source_id=source.pk,
        target_id=target.pk if target else None,
        amount=amount,
        created_at=timezone.now(),
    )


@pytest.mark.django_db
class TestApplyOperation:
    """Test LedgerStore.apply_operation validation and effects."""

    def test_deposit_increases_balance(self, alice):
        assert LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 5)) == 5
        alice.refresh_from_db()
        assert alice.balance == 5

    def test_pay_tab_decreases_balance(self, alice):
        LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 5))
        assert LedgerStore.apply_operation(_op(OperationKind.PAY_TAB, alice, 3)) == 2

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount_rejected(self, alice, amount):
        with pytest.raises(InvalidAmount):
            LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, amount))

    def test_unknown_source(self, alice):
        op = _op(OperationKind.DEPOSIT, alice, 1)
        op.source_id = "00000000-0000-0000-0000-000000000000"
        with pytest.raises(UnknownAccount):
            LedgerStore.apply_operation(op)

    def test_malformed_account_id(self, alice):
        op = _op(OperationKind.DEPOSIT, alice, 1)
        op.source_id = "not-a-uuid"
        with pytest.raises(UnknownAccount):
            LedgerStore.apply_operation(op)

    def test_inactive_member_refused(self, alice):
        LedgerStore.deactivate_member(alice.pk)
        with pytest.raises(InactiveAccount):
            LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 1))

    def test_pay_below_floor_refused(self, alice):
        LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 2))
        with pytest.raises(BalanceLimitExceeded):
            LedgerStore.apply_operation(_op(OperationKind.PAY_TAB, alice, 3))
        alice.refresh_from_db()
        assert alice.balance == 2

    def test_credit_limit_allows_negative_balance(self, db):
        member = LedgerStore.register_member("Vorstand", credit_limit=10)
        assert LedgerStore.apply_operation(_op(OperationKind.PAY_TAB, member, 10)) == -10
        with pytest.raises(BalanceLimitExceeded):
            LedgerStore.apply_operation(_op(OperationKind.PAY_TAB, member, 1))

    def test_default_credit_limit_from_settings(self, settings, alice):
        settings.KASSE_CREDIT_LIMIT = 4
        assert alice.floor == -4
        assert LedgerStore.apply_operation(_op(OperationKind.PAY_TAB, alice, 4)) == -4

    def test_transfer_moves_both_sides(self, alice, bob):
        LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 5))
        LedgerStore.apply_operation(_op(OperationKind.TRANSFER_TAB, alice, 3, target=bob))
        assert LedgerStore.snapshot() == {str(alice.pk): 2, str(bob.pk): 3}

    def test_failed_transfer_changes_neither_side(self, alice, bob):
        LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 2))
        with pytest.raises(BalanceLimitExceeded):
            LedgerStore.apply_operation(_op(OperationKind.TRANSFER_TAB, alice, 5, target=bob))
        assert LedgerStore.snapshot() == {str(alice.pk): 2, str(bob.pk): 0}

    def test_transfer_to_self_refused(self, alice):
        with pytest.raises(InvalidTransfer):
            LedgerStore.apply_operation(_op(OperationKind.TRANSFER_TAB, alice, 1, target=alice))

    def test_transfer_without_target_refused(self, alice):
        with pytest.raises(InvalidTransfer):
            LedgerStore.apply_operation(_op(OperationKind.TRANSFER_TAB, alice, 1))

    def test_transfer_to_unknown_target(self, alice):
        LedgerStore.apply_operation(_op(OperationKind.DEPOSIT, alice, 5))
        op = _op(OperationKind.TRANSFER_TAB, alice, 1)
        op.target_id = "00000000-0000-0000-0000-000000000000"
        with pytest.raises(UnknownAccount):
            LedgerStore.apply_operation(op)
        alice.refresh_from_db()
        assert alice.balance == 5


@pytest.mark.django_db
class TestSnapshotAndRebuild:
    """Test snapshot() and replay determinism of rebuild()."""

    def test_snapshot_has_no_side_effects(self, alice, bob):
        CashierService.request_deposit(alice.pk, 4)
        first = LedgerStore.snapshot()
        assert LedgerStore.snapshot() == first
        assert Operation.objects.count() == 1

    def test_rebuild_reproduces_incremental_snapshot(self, alice, bob):
        carol = LedgerStore.register_member("Carol", credit_limit=5)
        CashierService.request_deposit(alice.pk, 10)
        CashierService.request_pay_tab(alice.pk, 3)
        CashierService.request_transfer_tab(alice.pk, bob.pk, 4)
        CashierService.request_pay_tab(carol.pk, 5)
        CashierService.request_transfer_tab(bob.pk, carol.pk, 2)
        CashierService.request_deposit(bob.pk, 1)

        incremental = LedgerStore.snapshot()
        Member.objects.update(balance=999)
        assert LedgerStore.rebuild() == incremental
        assert LedgerStore.snapshot() == incremental
        assert incremental == {str(alice.pk): 3, str(bob.pk): 3, str(carol.pk): -3}

    def test_rebuild_from_explicit_log(self, alice, bob):
        CashierService.request_deposit(alice.pk, 5)
        CashierService.request_transfer_tab(alice.pk, bob.pk, 2)
        log = list(OperationLog.replayable())

        assert LedgerStore.rebuild(log=[]) == {str(alice.pk): 0, str(bob.pk): 0}
        assert LedgerStore.rebuild(log=log) == {str(alice.pk): 3, str(bob.pk): 2}

    def test_rebuild_ignores_rejected_operations(self, alice):
        CashierService.request_deposit(alice.pk, 5)
        pay = CashierService.request_pay_tab(alice.pk, 3)
        OperationLog.mark_status(pay.op_id, "REJECTED")

        assert LedgerStore.rebuild() == {str(alice.pk): 5}

    def test_inactive_members_still_replay(self, alice):
        CashierService.request_deposit(alice.pk, 5)
        LedgerStore.deactivate_member(alice.pk)
        assert LedgerStore.rebuild() == {str(alice.pk): 5}


@pytest.mark.django_db
class TestRemoteBalances:
    def test_record_remote_balances_leaves_local_balance(self, alice):
        CashierService.request_deposit(alice.pk, 5)
        LedgerStore.record_remote_balances({str(alice.pk): 42, "garbage": 1})
        alice.refresh_from_db()
        assert alice.balance == 5
        assert alice.remote_balance == 42
        assert alice.remote_synced_at is not None


@pytest.mark.django_db
class TestMemberRegistry:
    def test_register_requires_name(self):
        with pytest.raises(ValueError):
            LedgerStore.register_member("   ")

    def test_deactivate_unknown_member(self):
        with pytest.raises(UnknownAccount):
            LedgerStore.deactivate_member("00000000-0000-0000-0000-000000000000")

    def test_deactivate_keeps_member(self, alice):
        LedgerStore.deactivate_member(alice.pk)
        alice.refresh_from_db()
        assert alice.is_active is False
        assert alice.deactivated_at is not None
        assert Member.objects.filter(pk=alice.pk).exists()
