"""Operational endpoints: cashier actions, sync triggers, connectivity signals."""

import json
from datetime import timedelta
from django.conf import settings
from django.http import JsonResponse, HttpResponseBadRequest
from django.middleware.csrf import get_token
from django.utils import timezone
from core.connectivity import get_monitor
from core.errors import LedgerError, UnknownAccount, BalanceLimitExceeded
from core.ledger import LedgerStore
from core.models import Conflict
from core.oplog import OperationLog
from core.services import CashierService
from core.sync import reconcile


def health(request):
	return JsonResponse({"ok": True})


def csrf(request):
	# Forces creation/rotation of the CSRF token AND sets 'csrftoken' cookie
	return JsonResponse({"csrftoken": get_token(request)})


# --- Helpers -----------------------------------------------------------------

def _body(request) -> dict:
	try:
		body = json.loads(request.body or b"{}")
	except ValueError:
		raise ValueError("Invalid JSON")
	if not isinstance(body, dict):
		raise ValueError("JSON object expected")
	return body


def _ledger_error(e: LedgerError) -> JsonResponse:
	if isinstance(e, UnknownAccount):
		status = 404
	elif isinstance(e, BalanceLimitExceeded):
		status = 409
	else:
		status = 400
	return JsonResponse({"error": e.code, "detail": e.detail}, status=status)


def _operation_response(op) -> JsonResponse:
	return JsonResponse({
		"op_id": op.op_id,
		"kind": op.kind,
		"status": op.status,
		"snapshot": LedgerStore.snapshot(),
	}, status=201)


def _cashier(request, action):
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = _body(request)
	except ValueError as e:
		return HttpResponseBadRequest(str(e))
	try:
		op = action(body)
	except KeyError as e:
		return HttpResponseBadRequest(f"Missing field: {e}")
	except LedgerError as e:
		return _ledger_error(e)
	return _operation_response(op)


# --- Cashier actions -----------------------------------------------------------

def deposit(request):
	"""
	POST {"account", "amount", "memo"?}: add to a member's prepaid balance
	"""
	return _cashier(request, lambda b: CashierService.request_deposit(b["account"], b["amount"], b.get("memo", "")))


def pay_tab(request):
	"""
	POST {"account", "amount", "memo"?}: settle part of a member's tab
	"""
	return _cashier(request, lambda b: CashierService.request_pay_tab(b["account"], b["amount"], b.get("memo", "")))


def transfer_tab(request):
	"""
	POST {"source", "target", "amount", "memo"?}: move tab balance between members
	"""
	return _cashier(
		request,
		lambda b: CashierService.request_transfer_tab(b["source"], b["target"], b["amount"], b.get("memo", "")),
	)


# --- Sync ------------------------------------------------------------------------

def sync(request):
	"""
	POST: Manual reconciliation trigger. Never fails because the remote is down.
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	report = reconcile()
	return JsonResponse(report.as_dict())


def connectivity(request):
	"""
	POST {"online": bool}: raw transport signal from the host environment
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = _body(request)
	except ValueError as e:
		return HttpResponseBadRequest(str(e))
	if "online" not in body:
		return HttpResponseBadRequest("online required")

	monitor = get_monitor()
	emitted = False
	if body["online"]:
		emitted = monitor.transport_online()
	else:
		monitor.transport_offline()
	return JsonResponse({"state": monitor.state, "sync_requested": emitted})


def prune(request):
	"""
	POST {"days"?}: Remove synced operations older than the retention window
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = _body(request)
		days = int(body.get("days", getattr(settings, "KASSE_RETENTION_DAYS", 7)))
	except (TypeError, ValueError) as e:
		return HttpResponseBadRequest(str(e))
	removed = OperationLog.prune(timezone.now() - timedelta(days=days))
	return JsonResponse({"removed": removed})


# --- Conflicts -------------------------------------------------------------------

def resolve_conflict(request, conflict_id: int):
	"""
	POST {"action": "retry" | "discard"}: acknowledge a rejected operation
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		action = _body(request).get("action")
	except ValueError as e:
		return HttpResponseBadRequest(str(e))
	try:
		if action == "retry":
			conflict = CashierService.retry_conflict(conflict_id)
		elif action == "discard":
			conflict = CashierService.discard_conflict(conflict_id)
		else:
			return HttpResponseBadRequest("action must be retry or discard")
	except Conflict.DoesNotExist:
		return JsonResponse({"error": "unknown_conflict"}, status=404)
	except LedgerError as e:
		return _ledger_error(e)

	return JsonResponse({
		"id": conflict.id,
		"resolution": conflict.resolution,
		"retry_op_id": conflict.retry_operation.op_id if conflict.retry_operation else None,
	})
