"""
Celery tasks for ledger synchronization.

- reconcile_pending: drain the operation log against the remote store
- poll_connectivity: deliver debounced sync signals and retry pending work
- prune_synced_operations: retention cleanup of confirmed operations
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from celery import shared_task

from .connectivity import get_monitor
from .oplog import OperationLog
from .sync import reconcile

logger = logging.getLogger(__name__)


@shared_task(name="core.tasks.reconcile_pending", ignore_result=True)
def reconcile_pending() -> dict:
	"""
	Run one reconciliation pass. A concurrent pass makes this a no-op (SYNC_IN_PROGRESS).
	"""
	report = reconcile()
	logger.debug("Reconcile finished: %s", report.status)
	return report.as_dict()


@shared_task(name="core.tasks.poll_connectivity", ignore_result=True)
def poll_connectivity() -> bool:
	"""
	Periodic fallback: flush an owed sync signal, otherwise retry if there is pending work
	"""
	monitor = get_monitor()
	if monitor.poll():
		return True
	if monitor.is_online and OperationLog.stats()["pending"]:
		reconcile_pending.delay()
		return True
	return False


@shared_task(name="core.tasks.prune_synced_operations")
def prune_synced_operations(days_to_keep: int | None = None) -> int:
	"""
	Remove SYNCED operations older than the retention window (KASSE_RETENTION_DAYS)
	"""
	if days_to_keep is None:
		days_to_keep = int(getattr(settings, "KASSE_RETENTION_DAYS", 7))
	cutoff = timezone.now() - timedelta(days=days_to_keep)
	removed = OperationLog.prune(cutoff)
	logger.info("Retention cleanup removed %d operation(s)", removed)
	return removed
