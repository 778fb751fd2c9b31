"""Operation Log: append-only record of cashier actions.

Rows are ordered by seq (insertion order on this device) and that order is
never changed. Only the sync status and attempt bookkeeping of a row mutate.
"""
import logging
from collections import defaultdict
from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from .errors import InvalidTransition
from .models import Member, Operation, OperationStatus

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (OperationStatus.SYNCED, OperationStatus.REJECTED)


class PendingOperations:
	"""
	Lazy view of PENDING operations after a cursor, oldest first.

	The upper bound is fixed when the view is created, so iteration is finite
	even while the cashier keeps appending. Every iter() starts over from the
	cursor and re-reads status, so a partially consumed run can be restarted.
	"""

	def __init__(self, after_seq: int, chunk_size: int = 100):
		self.after_seq = int(after_seq)
		self.chunk_size = chunk_size
		self.upper_seq = Operation.objects.order_by("-seq").values_list("seq", flat=True).first() or 0

	def __iter__(self):
		last = self.after_seq
		while last < self.upper_seq:
			chunk = list(
				Operation.objects
				.filter(status=OperationStatus.PENDING, seq__gt=last, seq__lte=self.upper_seq)
				.select_related("source", "target")
				.order_by("seq")[:self.chunk_size]
			)
			if not chunk:
				return
			for op in chunk:
				yield op
			last = chunk[-1].seq

	def count(self) -> int:
		return Operation.objects.filter(
			status=OperationStatus.PENDING, seq__gt=self.after_seq, seq__lte=self.upper_seq
		).count()


class OperationLog:

	@staticmethod
	def append(op: Operation) -> Operation:
		"""
		Persist a new operation; call inside the same transaction that applied it
		"""
		if not op._state.adding:
			raise ValueError(f"operation {op.op_id} was already appended")
		op.status = OperationStatus.PENDING
		op.save(force_insert=True)
		logger.debug("Appended %s", op)
		return op

	@staticmethod
	def pending_since(cursor) -> PendingOperations:
		after = cursor.last_seq if hasattr(cursor, "last_seq") else int(cursor or 0)
		return PendingOperations(after)

	@staticmethod
	def mark_status(op_id: str, status: str) -> bool:
		"""
		PENDING -> SYNCED | REJECTED. Returns True when the row changed.

		The update is conditional on the row still being PENDING, so two markers
		racing on one operation cannot both win.
		"""
		if status not in TERMINAL_STATUSES:
			return OperationLog._illegal(op_id, f"cannot move an operation to {status}")
		updated = Operation.objects.filter(op_id=op_id, status=OperationStatus.PENDING).update(
			status=status, status_changed_at=timezone.now()
		)
		if updated:
			return True
		current = Operation.objects.filter(op_id=op_id).values_list("status", flat=True).first()
		if current is None:
			return OperationLog._illegal(op_id, "unknown operation")
		return OperationLog._illegal(op_id, f"{current} -> {status}")

	@staticmethod
	def _illegal(op_id: str, detail: str) -> bool:
		if getattr(settings, "KASSE_STRICT_TRANSITIONS", settings.DEBUG):
			raise InvalidTransition(f"{op_id}: {detail}")
		logger.error("Ignoring invalid status transition for %s: %s", op_id, detail)
		return False

	@staticmethod
	def record_attempt(op_id: str):
		op = Operation.objects.get(op_id=op_id)
		op.attempts += 1
		op.last_attempt_at = timezone.now()
		op.save(update_fields=["attempts", "last_attempt_at"])
		return op.attempts

	@staticmethod
	@transaction.atomic
	def prune(before) -> int:
		"""
		Delete SYNCED operations created before `before`; never PENDING or REJECTED.

		Their deltas are folded into Member.base_balance in the same transaction,
		so rebuild() still reproduces every balance after the rows are gone.
		"""
		ops = list(
			Operation.objects.select_for_update()
			.filter(status=OperationStatus.SYNCED, created_at__lt=before)
			.order_by("seq")
		)
		if not ops:
			return 0

		folded = defaultdict(int)
		for op in ops:
			for member_id, delta in op.deltas():
				folded[member_id] += delta
		for member_id, delta in folded.items():
			if delta:
				Member.objects.filter(pk=member_id).update(base_balance=F("base_balance") + delta)

		removed, _ = Operation.objects.filter(pk__in=[op.seq for op in ops]).delete()
		if removed:
			logger.info("Pruned %d synced operation(s) older than %s", removed, before.isoformat())
		return removed

	@staticmethod
	def replayable():
		return Operation.objects.filter(
			status__in=[OperationStatus.PENDING, OperationStatus.SYNCED]
		).order_by("seq").iterator()

	@staticmethod
	def stats() -> dict:
		stall_after = getattr(settings, "KASSE_STALL_ATTEMPTS", 5)
		agg = Operation.objects.aggregate(
			pending=Count("seq", filter=Q(status=OperationStatus.PENDING)),
			synced=Count("seq", filter=Q(status=OperationStatus.SYNCED)),
			rejected=Count("seq", filter=Q(status=OperationStatus.REJECTED)),
			stalled=Count("seq", filter=Q(status=OperationStatus.PENDING, attempts__gte=stall_after)),
		)
		return {key: int(value or 0) for key, value in agg.items()}

	@staticmethod
	def export() -> list[dict]:
		"""
		Whole log as JSON-ready dicts, for backups and debugging
		"""
		out = []
		for op in Operation.objects.select_related("source").order_by("seq").iterator():
			row = op.to_payload()
			row.update({
				"seq": op.seq,
				"status": op.status,
				"attempts": op.attempts,
			})
			out.append(row)
		return out
