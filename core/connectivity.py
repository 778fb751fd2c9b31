"""Connectivity Monitor.

Transport "online" events from the host are hints, not proof: an offline ->
online transition is only accepted after the liveness probe reaches the remote
store. Confirmed transitions emit `sync_requested`, at most once per debounce
window; a transition that lands inside the window leaves a signal owed, which
poll() delivers once the window has passed.
"""
import logging
import threading
import time

from django.conf import settings

from .adapters.remote_adapter import get_remote_adapter
from .signals import sync_requested

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"


class ConnectivityMonitor:

	def __init__(self, probe=None, debounce_seconds: float = 2.0, clock=time.monotonic):
		self._probe = probe or (lambda: True)
		self.debounce_seconds = float(debounce_seconds)
		self._clock = clock
		self._lock = threading.Lock()
		self._state = OFFLINE
		self._last_emit = None
		self._owed = False

	@property
	def state(self) -> str:
		return self._state

	@property
	def is_online(self) -> bool:
		return self._state == ONLINE

	def subscribe(self, receiver):
		sync_requested.connect(receiver, sender=ConnectivityMonitor, weak=False)

	def unsubscribe(self, receiver):
		sync_requested.disconnect(receiver, sender=ConnectivityMonitor)

	def transport_online(self) -> bool:
		"""
		Host says we are online. Returns True if a sync signal was emitted.
		"""
		if self._state == ONLINE:
			return False
		if not self._run_probe():
			logger.info("Transport online but remote store not reachable; staying offline")
			return False
		with self._lock:
			if self._state == ONLINE:
				return False
			self._state = ONLINE
			emit = self._claim_signal()
		logger.info("Connectivity confirmed online")
		if emit:
			self._emit()
		return emit

	def transport_offline(self):
		with self._lock:
			if self._state == OFFLINE:
				return
			self._state = OFFLINE
		logger.info("Connectivity lost; continuing offline")

	def poll(self) -> bool:
		"""
		Deliver a signal suppressed by debouncing, once the window is over
		"""
		with self._lock:
			if not (self._owed and self._state == ONLINE):
				return False
			emit = self._claim_signal()
		if emit:
			self._emit()
		return emit

	def _claim_signal(self) -> bool:
		# caller holds the lock
		now = self._clock()
		if self._last_emit is not None and now - self._last_emit < self.debounce_seconds:
			self._owed = True
			return False
		self._last_emit = now
		self._owed = False
		return True

	def _run_probe(self) -> bool:
		try:
			return bool(self._probe())
		except Exception:
			logger.exception("Liveness probe raised")
			return False

	def _emit(self):
		logger.debug("Emitting sync_requested")
		sync_requested.send(sender=ConnectivityMonitor, state=ONLINE)


_monitor = None
_monitor_lock = threading.Lock()


def get_monitor() -> ConnectivityMonitor:
	"""
	Process-wide monitor, probing through the configured remote adapter
	"""
	global _monitor
	with _monitor_lock:
		if _monitor is None:
			_monitor = ConnectivityMonitor(
				probe=lambda: get_remote_adapter().ping(),
				debounce_seconds=getattr(settings, "KASSE_DEBOUNCE_SECONDS", 2.0),
			)
		return _monitor


def reset_monitor(monitor: ConnectivityMonitor | None = None):
	global _monitor
	with _monitor_lock:
		_monitor = monitor
