"""Signal wiring: a confirmed reconnection schedules a reconciliation run."""

from django.dispatch import receiver

from .signals import sync_requested
from .tasks import reconcile_pending


@receiver(sync_requested, dispatch_uid="core.enqueue_reconciliation")
def enqueue_reconciliation(sender, **kwargs):
	reconcile_pending.delay()
