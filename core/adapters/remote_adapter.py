"""Adapters over the remote store.

The till works without any remote at all: DisabledRemoteAdapter answers
UNREACHABLE forever and the ledger simply stays local. StubRemoteAdapter talks
to the in-process remote_stub app; HttpRemoteAdapter talks to a real service
with a mandatory timeout on every call.
"""
import logging
from dataclasses import dataclass, field

import requests
from django.conf import settings
from remote_stub import services as remote_services

logger = logging.getLogger(__name__)

ACCEPTED = "ACCEPTED"
REJECTED = "REJECTED"
UNREACHABLE = "UNREACHABLE"


@dataclass
class SubmitResult:
	outcome: str
	reason: str = ""
	balances: dict = field(default_factory=dict)

	@property
	def accepted(self) -> bool:
		return self.outcome == ACCEPTED


class RemoteAdapter:
	name = "base"

	def submit_operation(self, op) -> SubmitResult:
		raise NotImplementedError

	def ping(self) -> bool:
		raise NotImplementedError


class DisabledRemoteAdapter(RemoteAdapter):
	"""
	No remote configured; local-only mode
	"""
	name = "disabled"

	def submit_operation(self, op) -> SubmitResult:
		return SubmitResult(UNREACHABLE, "remote store disabled")

	def ping(self) -> bool:
		return False


class StubRemoteAdapter(RemoteAdapter):
	"""
	Calls the remote_stub decision logic in-process; no network, fully deterministic
	"""
	name = "stub"

	def submit_operation(self, op) -> SubmitResult:
		answer = remote_services.submit(op.to_payload())
		return SubmitResult(answer["outcome"], answer.get("reason", ""), answer.get("balances") or {})

	def ping(self) -> bool:
		return True


class HttpRemoteAdapter(RemoteAdapter):
	"""
	JSON over HTTP. Anything that is not a clear accept/reject counts as UNREACHABLE.
	"""
	name = "http"

	def __init__(self, base_url: str, timeout: float = 5.0, session=None):
		if not base_url:
			raise ValueError("KASSE_REMOTE_URL is required for the http remote store")
		self.base_url = base_url.rstrip("/")
		self.timeout = timeout
		self.session = session or requests.Session()

	def submit_operation(self, op) -> SubmitResult:
		try:
			resp = self.session.post(
				f"{self.base_url}/operations",
				json=op.to_payload(),
				headers={"Idempotency-Key": op.op_id},
				timeout=self.timeout,
			)
		except requests.RequestException as e:
			logger.info("Remote store unreachable while submitting %s: %s", op.op_id, e)
			return SubmitResult(UNREACHABLE, str(e))

		if resp.status_code in (200, 201):
			body = self._json(resp)
			return SubmitResult(ACCEPTED, "", body.get("balances") or {})
		if resp.status_code == 409:
			body = self._json(resp)
			return SubmitResult(REJECTED, body.get("reason") or "rejected by remote store", body.get("balances") or {})
		# other 4xx: stays pending, never dropped
		if 400 <= resp.status_code < 500:
			logger.error("Remote store refused %s with HTTP %s: %s", op.op_id, resp.status_code, resp.text[:200])
		else:
			logger.warning("Remote store error for %s: HTTP %s", op.op_id, resp.status_code)
		return SubmitResult(UNREACHABLE, f"HTTP {resp.status_code}")

	def ping(self) -> bool:
		try:
			resp = self.session.get(f"{self.base_url}/ping", timeout=self.timeout)
		except requests.RequestException as e:
			logger.info("Liveness probe failed: %s", e)
			return False
		return resp.status_code < 400

	@staticmethod
	def _json(resp) -> dict:
		try:
			body = resp.json()
		except ValueError:
			return {}
		return body if isinstance(body, dict) else {}


def get_remote_adapter() -> RemoteAdapter:
	"""
	Pick the adapter named by KASSE_REMOTE_STORE (disabled | stub | http)
	"""
	mode = getattr(settings, "KASSE_REMOTE_STORE", "disabled")
	if mode == "stub":
		return StubRemoteAdapter()
	if mode == "http":
		return HttpRemoteAdapter(
			getattr(settings, "KASSE_REMOTE_URL", ""),
			timeout=float(getattr(settings, "KASSE_REMOTE_TIMEOUT", 5.0)),
		)
	if mode != "disabled":
		logger.warning("Unknown KASSE_REMOTE_STORE %r; running local-only", mode)
	return DisabledRemoteAdapter()
