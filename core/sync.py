"""Sync Reconciler: drains pending operations against the remote store.

Operations are submitted strictly in log order. The remote store decides
acceptance (it alone sees every device's operations on a shared account); the
local log only records what the cashier intended. A rejected operation is
rolled back locally by replaying the log without it.

Only one run may hold the cursor lease at a time. A run that finds the lease
taken returns SYNC_IN_PROGRESS instead of racing, and an expired lease (crashed
worker) can be taken over.
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .adapters.remote_adapter import ACCEPTED, REJECTED, get_remote_adapter
from .ledger import LedgerStore
from .models import Conflict, OperationStatus, SyncCursor
from .oplog import OperationLog
from .signals import operation_rejected

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
UNREACHABLE = "UNREACHABLE"
CANCELLED = "CANCELLED"
ERROR = "ERROR"


@dataclass
class SyncReport:
	status: str
	synced: list = field(default_factory=list)
	rejected: list = field(default_factory=list)
	remaining: int = 0
	error: str = ""

	def as_dict(self) -> dict:
		return asdict(self)


class Reconciler:

	def __init__(self, remote=None, cancel_event=None):
		self.remote = remote or get_remote_adapter()
		self.cancel_event = cancel_event

	def _lease_seconds(self) -> int:
		return int(getattr(settings, "KASSE_SYNC_LEASE_SECONDS", 60))

	def _acquire(self) -> bool:
		SyncCursor.load()
		now = timezone.now()
		taken = SyncCursor.objects.filter(name="global").filter(
			Q(running=False) | Q(lease_expires_at__lt=now)
		).update(running=True, lease_expires_at=now + timedelta(seconds=self._lease_seconds()))
		return taken == 1

	def _renew(self):
		SyncCursor.objects.filter(name="global", running=True).update(
			lease_expires_at=timezone.now() + timedelta(seconds=self._lease_seconds())
		)

	def _release(self, outcome: str):
		SyncCursor.objects.filter(name="global").update(
			running=False, lease_expires_at=None, last_run_at=timezone.now(), last_outcome=outcome
		)

	def _advance(self, op):
		# forward only; a stale run can never move the cursor back
		SyncCursor.objects.filter(name="global", last_seq__lt=op.seq).update(last_seq=op.seq, last_op_id=op.op_id)

	def _cancelled(self) -> bool:
		return self.cancel_event is not None and self.cancel_event.is_set()

	def reconcile(self) -> SyncReport:
		if not self._acquire():
			logger.info("Reconciliation already running; skipping")
			return SyncReport(status=SYNC_IN_PROGRESS, remaining=OperationLog.stats()["pending"])

		report = SyncReport(status=COMPLETED)
		try:
			cursor = SyncCursor.load()
			for op in OperationLog.pending_since(cursor):
				if self._cancelled():
					report.status = CANCELLED
					logger.info("Reconciliation cancelled before %s", op.op_id)
					break

				result = self.remote.submit_operation(op)

				if result.outcome == ACCEPTED:
					with transaction.atomic():
						OperationLog.mark_status(op.op_id, OperationStatus.SYNCED)
						self._advance(op)
						LedgerStore.record_remote_balances(result.balances)
					report.synced.append(op.op_id)
				elif result.outcome == REJECTED:
					self._reject(op, result.reason)
					report.rejected.append(op.op_id)
				else:
					OperationLog.record_attempt(op.op_id)
					report.status = UNREACHABLE
					report.error = result.reason
					logger.info("Remote store unreachable; %s and later operations stay pending", op.op_id)
					break
				self._renew()
		except Exception:
			report.status = ERROR
			raise
		finally:
			self._release(report.status)

		report.remaining = OperationLog.stats()["pending"]
		if report.synced or report.rejected:
			logger.info(
				"Reconciliation %s: %d synced, %d rejected, %d pending",
				report.status, len(report.synced), len(report.rejected), report.remaining,
			)
		return report

	def _reject(self, op, reason: str):
		with transaction.atomic():
			OperationLog.mark_status(op.op_id, OperationStatus.REJECTED)
			self._advance(op)
			conflict, _ = Conflict.objects.get_or_create(operation=op, defaults={"reason": reason[:200]})
			LedgerStore.rebuild()
		logger.warning("Remote store rejected %s (%s %s): %s", op.op_id, op.kind, op.amount, reason)
		operation_rejected.send(sender=Reconciler, operation=op, conflict=conflict, reason=reason)


def reconcile(remote=None, cancel_event=None) -> SyncReport:
	return Reconciler(remote=remote, cancel_event=cancel_event).reconcile()
