"""Cashier-facing orchestration.

Each cashier intent applies the operation to the Ledger Store and appends it
to the Operation Log in one transaction: either both happen or neither does.
Validation errors propagate to the caller and nothing is appended. The network
is never touched here; if the till is online a sync is requested after commit,
on a background thread so the cashier never waits on the remote store.
"""
import logging
import threading
import uuid
from django.db import connection, transaction
from django.utils import timezone

from .connectivity import get_monitor
from .errors import InvalidAmount, UnknownAccount
from .ledger import LedgerStore
from .models import Conflict, ConflictResolution, DeviceIdentity, Member, Operation, OperationKind
from .oplog import OperationLog
from .tasks import reconcile_pending

logger = logging.getLogger(__name__)


def new_op_id() -> str:
	return f"{DeviceIdentity.current()}:{uuid.uuid4().hex}"


def _dispatch_sync():
	try:
		reconcile_pending.delay()
	except Exception:
		logger.exception("Background sync failed; the periodic poll will retry")
	finally:
		connection.close()


def _start_background_sync() -> threading.Thread:
	thread = threading.Thread(target=_dispatch_sync, name="kasse-sync", daemon=True)
	thread.start()
	return thread


def _request_sync_if_online():
	if get_monitor().is_online:
		_start_background_sync()


class CashierService:

	@staticmethod
	def _record(kind: str, source, amount, target=None, memo: str = "") -> Operation:
		try:
			amount = int(amount)
		except (TypeError, ValueError):
			raise InvalidAmount(f"amount must be an integer, got {amount!r}")
		if source in (None, ""):
			raise UnknownAccount("source account required")

		with transaction.atomic():
			op = Operation(
				op_id=new_op_id(),
				kind=kind,
				source_id=source.pk if isinstance(source, Member) else source,
				target_id=target.pk if isinstance(target, Member) else (target or None),
				amount=amount,
				memo=(memo or "")[:200],
				created_at=timezone.now(),
			)
			balance = LedgerStore.apply_operation(op)
			OperationLog.append(op)
			transaction.on_commit(_request_sync_if_online)

		logger.info("%s %s on %s -> balance %s", kind, amount, op.source_id, balance)
		return op

	@staticmethod
	def request_deposit(account, amount, memo: str = "") -> Operation:
		return CashierService._record(OperationKind.DEPOSIT, account, amount, memo=memo)

	@staticmethod
	def request_pay_tab(account, amount, memo: str = "") -> Operation:
		return CashierService._record(OperationKind.PAY_TAB, account, amount, memo=memo)

	@staticmethod
	def request_transfer_tab(source, target, amount, memo: str = "") -> Operation:
		return CashierService._record(OperationKind.TRANSFER_TAB, source, amount, target=target, memo=memo)

	# --- Conflicts ---------------------------------------------------------

	@staticmethod
	def open_conflicts():
		return Conflict.objects.filter(resolution=ConflictResolution.OPEN).select_related("operation").order_by("created_at")

	@staticmethod
	def retry_conflict(conflict_id) -> Conflict:
		"""
		Re-issue the rejected intent as a brand-new operation (subject to local validation again)
		"""
		with transaction.atomic():
			conflict = CashierService._open_conflict(conflict_id)
			rejected = conflict.operation
			retry = CashierService._record(
				rejected.kind, rejected.source_id, rejected.amount,
				target=rejected.target_id, memo=rejected.memo,
			)
			conflict.resolution = ConflictResolution.RETRIED
			conflict.resolved_at = timezone.now()
			conflict.retry_operation = retry
			conflict.save(update_fields=["resolution", "resolved_at", "retry_operation"])
		return conflict

	@staticmethod
	def discard_conflict(conflict_id) -> Conflict:
		with transaction.atomic():
			conflict = CashierService._open_conflict(conflict_id)
			conflict.resolution = ConflictResolution.DISCARDED
			conflict.resolved_at = timezone.now()
			conflict.save(update_fields=["resolution", "resolved_at"])
		logger.info("Conflict %s discarded; %s stays rejected", conflict.id, conflict.operation.op_id)
		return conflict

	@staticmethod
	def _open_conflict(conflict_id) -> Conflict:
		try:
			return Conflict.objects.select_for_update().select_related("operation").get(
				pk=conflict_id, resolution=ConflictResolution.OPEN
			)
		except (Conflict.DoesNotExist, ValueError):
			raise Conflict.DoesNotExist(f"no open conflict {conflict_id}")
