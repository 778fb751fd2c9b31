"""Member registry and demo helpers: seed a few members, register, deactivate."""

import json
from django.http import JsonResponse, HttpResponseBadRequest
from core.errors import UnknownAccount
from core.ledger import LedgerStore
from core.models import Member

DEMO_MEMBERS = ("Tisch 1", "Tisch 2", "Vorstand")


def _member_dict(m: Member) -> dict:
	return {
		"id": str(m.id),
		"display_name": m.display_name,
		"balance": m.balance,
		"floor": m.floor,
		"remote_balance": m.remote_balance,
		"is_active": m.is_active,
	}


def seed(request):
	"""
	POST: Create (or fetch) the demo members for this till
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	members = []
	for name in DEMO_MEMBERS:
		m = Member.objects.filter(display_name=name).first() or LedgerStore.register_member(name)
		members.append(_member_dict(m))
	return JsonResponse({"members": members})


def members(request):
	"""
	GET: all members; POST {"display_name", "credit_limit"?}: register one
	"""
	if request.method == "GET":
		return JsonResponse([_member_dict(m) for m in Member.objects.all()], safe=False)
	if request.method != "POST":
		return HttpResponseBadRequest("GET or POST only")
	try:
		body = json.loads(request.body or b"{}")
		credit_limit = body.get("credit_limit")
		m = LedgerStore.register_member(
			body.get("display_name", ""),
			credit_limit=int(credit_limit) if credit_limit is not None else None,
		)
	except (AttributeError, TypeError, ValueError) as e:
		return HttpResponseBadRequest(str(e))
	return JsonResponse(_member_dict(m), status=201)


def deactivate(request, member_id: str):
	"""
	POST: Deactivate a member; history is kept, new operations are refused
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		m = LedgerStore.deactivate_member(member_id)
	except UnknownAccount as e:
		return JsonResponse({"error": e.code, "detail": e.detail}, status=404)
	return JsonResponse(_member_dict(m))
