"""Database models for the club ledger.


Tables:
- DeviceIdentity: the persisted id of this till, prefixes every operation id
- Member: one tab-holder and its materialized balance (the Ledger Snapshot)
- OperationKind / OperationStatus
- Operation: append-only log of cashier actions awaiting or past sync
- SyncCursor: singleton bookkeeping row owned by the reconciler
- ConflictResolution
- Conflict: a remote rejection waiting for a human to retry or discard it
"""

import uuid
from django.db import models
from django.conf import settings


class DeviceIdentity(models.Model):
	"""
	Singleton row; generated on first use unless KASSE_DEVICE_ID is set
	"""
	id = models.PositiveSmallIntegerField(primary_key=True, default=1, editable=False)
	device_id = models.CharField(max_length=64, unique=True)
	created_at = models.DateTimeField(auto_now_add=True)

	@classmethod
	def current(cls) -> str:
		configured = getattr(settings, "KASSE_DEVICE_ID", "")
		if configured:
			return configured
		obj, _ = cls.objects.get_or_create(pk=1, defaults={"device_id": f"pos-{uuid.uuid4().hex[:12]}"})
		return obj.device_id


class Member(models.Model):
	"""
	A tab-holder. Never deleted, only deactivated.

	balance is base_balance plus the fold of all PENDING and SYNCED operations
	touching this member. base_balance holds the effect of pruned operations.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	display_name = models.CharField(max_length=200)
	balance = models.BigIntegerField(default=0)
	base_balance = models.BigIntegerField(default=0)
	credit_limit = models.BigIntegerField(null=True, blank=True) # None -> KASSE_CREDIT_LIMIT
	remote_balance = models.BigIntegerField(null=True, blank=True)
	remote_synced_at = models.DateTimeField(null=True, blank=True)
	is_active = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
	deactivated_at = models.DateTimeField(null=True, blank=True)

	class Meta:
		ordering = ["display_name"]

	def __str__(self):
		return f"{self.display_name} ({self.balance})"

	@property
	def floor(self) -> int:
		limit = self.credit_limit
		if limit is None:
			limit = getattr(settings, "KASSE_CREDIT_LIMIT", 0)
		return -int(limit)


class OperationKind(models.TextChoices):
	DEPOSIT = "DEPOSIT", "Deposit"
	PAY_TAB = "PAY_TAB", "Pay tab"
	TRANSFER_TAB = "TRANSFER_TAB", "Transfer tab"


class OperationStatus(models.TextChoices):
	PENDING = "PENDING", "Pending"
	SYNCED = "SYNCED", "Synced"
	REJECTED = "REJECTED", "Rejected"


# Everything else on Operation is identity and frozen after the first save.
MUTABLE_OPERATION_FIELDS = frozenset({"status", "status_changed_at", "attempts", "last_attempt_at"})


class Operation(models.Model):
	"""
	One cashier action. seq is the local insertion order and never changes.

	op_id is unique across devices so the remote store can deduplicate retries.
	"""
	seq = models.BigAutoField(primary_key=True)
	op_id = models.CharField(max_length=100, unique=True)
	kind = models.CharField(max_length=16, choices=OperationKind.choices)
	source = models.ForeignKey(Member, on_delete=models.PROTECT, related_name="operations_out")
	target = models.ForeignKey(Member, null=True, blank=True, on_delete=models.PROTECT, related_name="operations_in")
	amount = models.BigIntegerField()
	memo = models.CharField(max_length=200, blank=True, default="")
	created_at = models.DateTimeField()
	status = models.CharField(max_length=10, choices=OperationStatus.choices, default=OperationStatus.PENDING)
	status_changed_at = models.DateTimeField(null=True, blank=True)
	attempts = models.IntegerField(default=0)
	last_attempt_at = models.DateTimeField(null=True, blank=True)

	class Meta:
		ordering = ["seq"]
		indexes = [
			models.Index(fields=["status", "seq"]),
			models.Index(fields=["status", "created_at"]),
		]

	def __str__(self):
		return f"{self.op_id} {self.kind} {self.amount} [{self.status}]"

	def save(self, *args, **kwargs):
		if self.pk is not None and not self._state.adding:
			update_fields = kwargs.get("update_fields")
			if update_fields is None or not set(update_fields) <= MUTABLE_OPERATION_FIELDS:
				raise ValueError(f"operation {self.op_id} is immutable; only sync status may change")
		super().save(*args, **kwargs)

	def deltas(self) -> list[tuple]:
		"""
		Balance effect of this operation as (member_id, delta) pairs
		"""
		if self.kind == OperationKind.DEPOSIT:
			return [(self.source_id, self.amount)]
		if self.kind == OperationKind.PAY_TAB:
			return [(self.source_id, -self.amount)]
		return [(self.source_id, -self.amount), (self.target_id, self.amount)]

	def to_payload(self) -> dict:
		"""
		Wire shape used for the remote store and for log exports
		"""
		return {
			"op_id": self.op_id,
			"kind": self.kind,
			"source": str(self.source_id),
			"target": str(self.target_id) if self.target_id else None,
			"amount": int(self.amount),
			"credit_limit": self.source.credit_limit,
			"memo": self.memo,
			"created_at": self.created_at.isoformat().replace("+00:00", "Z"),
		}


class SyncCursor(models.Model):
	"""
	Last operation confirmed by the remote store, plus the single-run lease
	"""
	name = models.CharField(max_length=32, primary_key=True, default="global")
	last_seq = models.BigIntegerField(default=0)
	last_op_id = models.CharField(max_length=100, blank=True, default="")
	running = models.BooleanField(default=False)
	lease_expires_at = models.DateTimeField(null=True, blank=True)
	last_run_at = models.DateTimeField(null=True, blank=True)
	last_outcome = models.CharField(max_length=24, blank=True, default="")

	@classmethod
	def load(cls):
		obj, _ = cls.objects.get_or_create(name="global")
		return obj


class ConflictResolution(models.TextChoices):
	OPEN = "OPEN", "Open"
	RETRIED = "RETRIED", "Retried"
	DISCARDED = "DISCARDED", "Discarded"


class Conflict(models.Model):
	"""
	A rejected operation surfaced to the cashier; must be acknowledged
	"""
	id = models.BigAutoField(primary_key=True)
	operation = models.OneToOneField(Operation, on_delete=models.PROTECT, related_name="conflict")
	reason = models.CharField(max_length=200, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)
	resolution = models.CharField(max_length=10, choices=ConflictResolution.choices, default=ConflictResolution.OPEN)
	resolved_at = models.DateTimeField(null=True, blank=True)
	retry_operation = models.ForeignKey(Operation, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
