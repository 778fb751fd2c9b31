"""In-process remote store: authoritative balances shared by every till.

Stands in for the club's cloud backend. Decisions are stored per op_id so a
retried submission gets the original answer instead of being applied twice.
"""

from django.conf import settings
from django.db import models


class RemoteAccount(models.Model):
	"""
	Balance of one member as the remote store sees it (all devices merged)
	"""
	account_id = models.CharField(max_length=64, primary_key=True)
	balance = models.BigIntegerField(default=0)
	credit_limit = models.BigIntegerField(null=True, blank=True)

	@property
	def floor(self) -> int:
		limit = self.credit_limit
		if limit is None:
			limit = getattr(settings, "KASSE_CREDIT_LIMIT", 0)
		return -int(limit)


class RemoteOperation(models.Model):
	"""
	Every operation the remote store has decided on, accepted or not
	"""
	OUTCOMES = (("ACCEPTED", "Accepted"), ("REJECTED", "Rejected"))

	op_id = models.CharField(max_length=100, primary_key=True)
	kind = models.CharField(max_length=16)
	source = models.CharField(max_length=64)
	target = models.CharField(max_length=64, blank=True, default="")
	amount = models.BigIntegerField()
	outcome = models.CharField(max_length=10, choices=OUTCOMES)
	reason = models.CharField(max_length=200, blank=True, default="")
	received_at = models.DateTimeField(auto_now_add=True)
