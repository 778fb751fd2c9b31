"""Ledger Store: member accounts and their materialized balances.

Balances are only ever changed through Operation.deltas(), both when a cashier
action is applied and when the whole log is replayed, so an incremental
snapshot and a rebuilt one cannot drift apart.
"""
import logging
from collections import defaultdict
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .errors import BalanceLimitExceeded, InactiveAccount, InvalidAmount, InvalidTransfer, UnknownAccount
from .models import Member, Operation, OperationKind
from .oplog import OperationLog

logger = logging.getLogger(__name__)


class LedgerStore:
	"""
	Stateless facade over Member rows; every call runs in its own (or the caller's) transaction
	"""

	@staticmethod
	def register_member(display_name: str, credit_limit: int | None = None) -> Member:
		display_name = (display_name or "").strip()
		if not display_name:
			raise ValueError("display_name required")
		member = Member.objects.create(display_name=display_name, credit_limit=credit_limit)
		logger.info("Registered member %s (%s)", member.id, display_name)
		return member

	@staticmethod
	def deactivate_member(member_id) -> Member:
		try:
			member = Member.objects.get(pk=member_id)
		except (Member.DoesNotExist, ValueError, ValidationError):
			raise UnknownAccount(f"no member {member_id}")
		if member.is_active:
			member.is_active = False
			member.deactivated_at = timezone.now()
			member.save(update_fields=["is_active", "deactivated_at"])
		return member

	@staticmethod
	@transaction.atomic
	def apply_operation(op: Operation) -> int:
		"""
		Validate op and apply its deltas. Returns the source member's new balance.

		Rows are locked in primary-key order so two transfers over the same
		pair of members cannot deadlock; unrelated members are never locked.
		"""
		if op.amount is None or int(op.amount) <= 0:
			raise InvalidAmount(f"amount must be > 0, got {op.amount}")

		ids = [op.source_id]
		if op.kind == OperationKind.TRANSFER_TAB:
			if op.target_id is None:
				raise InvalidTransfer("transfer needs a target account")
			if str(op.target_id) == str(op.source_id):
				raise InvalidTransfer("cannot transfer a tab to the same account")
			ids.append(op.target_id)
		elif op.target_id is not None:
			raise InvalidTransfer(f"{op.kind} does not take a target account")

		try:
			locked = {str(m.pk): m for m in Member.objects.select_for_update().filter(pk__in=ids).order_by("pk")}
		except (ValueError, ValidationError):
			raise UnknownAccount(f"malformed account id in {ids}")
		for member_id in ids:
			member = locked.get(str(member_id))
			if member is None:
				raise UnknownAccount(f"no member {member_id}")
			if not member.is_active:
				raise InactiveAccount(f"member {member_id} is deactivated")

		source = locked[str(op.source_id)]
		new_balances = {key: m.balance for key, m in locked.items()}
		for member_id, delta in op.deltas():
			new_balances[str(member_id)] += delta

		if op.kind in (OperationKind.PAY_TAB, OperationKind.TRANSFER_TAB):
			if new_balances[str(source.pk)] < source.floor:
				raise BalanceLimitExceeded(
					f"{source.display_name}: balance {source.balance} - {op.amount} is below floor {source.floor}"
				)

		for key, member in locked.items():
			if member.balance != new_balances[key]:
				member.balance = new_balances[key]
				member.save(update_fields=["balance"])
		return new_balances[str(source.pk)]

	@staticmethod
	def snapshot() -> dict:
		return {str(pk): balance for pk, balance in Member.objects.order_by("pk").values_list("pk", "balance")}

	@staticmethod
	@transaction.atomic
	def rebuild(log=None) -> dict:
		"""
		Reset every balance to its pruned checkpoint (base_balance) and replay `log`
		(default: the replayable part of the operation log)

		No floor checks here: the log already holds only accepted local intent.
		"""
		if log is None:
			log = OperationLog.replayable()

		members = list(Member.objects.select_for_update().order_by("pk"))
		totals = defaultdict(int, {str(m.pk): m.base_balance for m in members})
		for op in log:
			for member_id, delta in op.deltas():
				totals[str(member_id)] += delta

		changed = []
		for member in members:
			balance = totals.get(str(member.pk), 0)
			if member.balance != balance:
				member.balance = balance
				changed.append(member)
		if changed:
			Member.objects.bulk_update(changed, ["balance"])
			logger.info("Rebuild adjusted %d member balance(s)", len(changed))
		return {str(m.pk): m.balance for m in members}

	@staticmethod
	def record_remote_balances(balances: dict):
		"""
		Remember what the remote store reports; informational only, never touches balance
		"""
		if not balances:
			return
		now = timezone.now()
		for member_id, value in balances.items():
			try:
				Member.objects.filter(pk=member_id).update(remote_balance=int(value), remote_synced_at=now)
			except (ValueError, TypeError, ValidationError):
				logger.warning("Ignoring remote balance for unparseable account %r", member_id)
