"""HTTP endpoints for the remote store stub, the surface HttpRemoteAdapter talks to"""

import json
from django.http import HttpResponse, JsonResponse, HttpResponseBadRequest
from django.views.decorators.csrf import csrf_exempt
from . import services


def ping(request):
	"""
	GET/HEAD: liveness probe; empty 204 that must not be cached
	"""
	response = HttpResponse(status=204)
	response["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
	response["Pragma"] = "no-cache"
	return response


def get_balance(request, account_id: str):
	"""
	GET: Authoritative balance for one account
	"""
	return JsonResponse({"account_id": account_id, "balance": services.balance(account_id)})


@csrf_exempt
def submit_operation(request):
	"""
	POST: Decide on one operation; 201 accepted (200 on a duplicate), 409 rejected
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = json.loads(request.body or b"{}")
		result = services.submit(body)
	except ValueError as e:
		return HttpResponseBadRequest(str(e))
	if result["outcome"] == "REJECTED":
		return JsonResponse(result, status=409)
	return JsonResponse(result, status=200 if result["duplicate"] else 201)
