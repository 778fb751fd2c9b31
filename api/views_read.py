"""Read-only endpoints to inspect the till (members, snapshot, log, sync state)."""

from django.http import JsonResponse
from core.connectivity import get_monitor
from core.ledger import LedgerStore
from core.models import Operation, SyncCursor
from core.oplog import OperationLog
from core.services import CashierService


def snapshot(request):
	"""
	GET: Current balance per member id
	"""
	return JsonResponse(LedgerStore.snapshot())


def operations(request):
	"""
	GET: Most recent operations, newest first (?status=PENDING to filter)
	"""
	qs = Operation.objects.select_related("source").order_by("-seq")
	status = request.GET.get("status")
	if status:
		qs = qs.filter(status=status.upper())
	data = [
		dict(op.to_payload(), seq=op.seq, status=op.status, attempts=op.attempts)
		for op in qs[:100]
	]
	return JsonResponse(data, safe=False)


def export_operations(request):
	"""
	GET: The full operation log, oldest first (backup / debugging)
	"""
	return JsonResponse(OperationLog.export(), safe=False)


def sync_status(request):
	cursor = SyncCursor.load()
	return JsonResponse({
		"connectivity": get_monitor().state,
		"operations": OperationLog.stats(),
		"cursor": {
			"last_seq": cursor.last_seq,
			"last_op_id": cursor.last_op_id,
			"running": cursor.running,
			"last_run_at": cursor.last_run_at.isoformat() if cursor.last_run_at else None,
			"last_outcome": cursor.last_outcome,
		},
	})


def conflicts(request):
	"""
	GET: Rejected operations still waiting for the cashier to retry or discard them
	"""
	data = [
		{
			"id": c.id,
			"op_id": c.operation.op_id,
			"kind": c.operation.kind,
			"source": str(c.operation.source_id),
			"target": str(c.operation.target_id) if c.operation.target_id else None,
			"amount": c.operation.amount,
			"reason": c.reason,
			"created_at": c.created_at.isoformat(),
		}
		for c in CashierService.open_conflicts()
	]
	return JsonResponse(data, safe=False)
