"""Decision logic of the remote store stub.

Shared by the HTTP views and by StubRemoteAdapter, which calls it directly for
deterministic tests.
"""
import logging
from django.db import transaction, IntegrityError

from .models import RemoteAccount, RemoteOperation

logger = logging.getLogger(__name__)

KINDS = ("DEPOSIT", "PAY_TAB", "TRANSFER_TAB")


def _deltas(kind: str, source: str, target: str, amount: int):
	if kind == "DEPOSIT":
		return [(source, amount)]
	if kind == "PAY_TAB":
		return [(source, -amount)]
	return [(source, -amount), (target, amount)]


def _answer(rop: RemoteOperation, duplicate: bool) -> dict:
	ids = [rop.source] + ([rop.target] if rop.target else [])
	balances = dict(RemoteAccount.objects.filter(account_id__in=ids).values_list("account_id", "balance"))
	return {
		"op_id": rop.op_id,
		"outcome": rop.outcome,
		"reason": rop.reason,
		"balances": balances,
		"duplicate": duplicate,
	}


@transaction.atomic
def submit(payload: dict) -> dict:
	"""
	Decide on one operation. Idempotent on op_id.

	Raises ValueError for malformed payloads (HTTP 400 at the view).
	"""
	op_id = str(payload.get("op_id") or "").strip()
	kind = payload.get("kind")
	source = str(payload.get("source") or "").strip()
	target = str(payload.get("target") or "").strip()
	try:
		amount = int(payload.get("amount"))
	except (TypeError, ValueError):
		raise ValueError("amount must be an integer")
	if not op_id or not source:
		raise ValueError("op_id and source required")
	if kind not in KINDS:
		raise ValueError(f"unknown kind {kind!r}")
	if kind == "TRANSFER_TAB" and not target:
		raise ValueError("transfer needs a target")
	if amount <= 0:
		raise ValueError("amount must be > 0")
	credit_limit = payload.get("credit_limit")
	if credit_limit is not None:
		try:
			credit_limit = int(credit_limit)
		except (TypeError, ValueError):
			raise ValueError("credit_limit must be an integer")
		if credit_limit < 0:
			raise ValueError("credit_limit must be >= 0")

	existing = RemoteOperation.objects.filter(op_id=op_id).first()
	if existing:
		return _answer(existing, duplicate=True)

	ids = sorted({source, target} - {""})
	for account_id in ids:
		RemoteAccount.objects.get_or_create(account_id=account_id)
	accounts = {a.account_id: a for a in RemoteAccount.objects.select_for_update().filter(account_id__in=ids).order_by("account_id")}

	# per-member credit limit as configured on the submitting till
	src = accounts[source]
	if credit_limit is not None and src.credit_limit != credit_limit:
		src.credit_limit = credit_limit
		src.save(update_fields=["credit_limit"])

	new_balances = {key: a.balance for key, a in accounts.items()}
	for account_id, delta in _deltas(kind, source, target, amount):
		new_balances[account_id] += delta

	outcome, reason = "ACCEPTED", ""
	if kind != "DEPOSIT" and new_balances[source] < src.floor:
		outcome = "REJECTED"
		reason = f"balance {src.balance} - {amount} would fall below floor {src.floor}"

	try:
		with transaction.atomic():
			rop = RemoteOperation.objects.create(
				op_id=op_id, kind=kind, source=source, target=target,
				amount=amount, outcome=outcome, reason=reason,
			)
	except IntegrityError:
		# Lost a race on the same op_id; answer with the winner's decision
		return _answer(RemoteOperation.objects.get(op_id=op_id), duplicate=True)

	if outcome == "ACCEPTED":
		for key, account in accounts.items():
			account.balance = new_balances[key]
			account.save(update_fields=["balance"])
	else:
		logger.info("Remote rejected %s: %s", op_id, reason)
	return _answer(rop, duplicate=False)


def balance(account_id: str) -> int:
	acct, _ = RemoteAccount.objects.get_or_create(account_id=account_id)
	return int(acct.balance)
