"""Ledger error taxonomy.

Local validation errors are raised before anything is appended to the log and
are shown to the cashier immediately. Transport problems are not errors here:
they leave operations PENDING and show up in the SyncReport instead.
"""


class LedgerError(Exception):
	code = "ledger_error"

	def __init__(self, detail: str = ""):
		super().__init__(detail or self.code)
		self.detail = detail


class InvalidAmount(LedgerError):
	code = "invalid_amount"


class UnknownAccount(LedgerError):
	code = "unknown_account"


class InactiveAccount(UnknownAccount):
	code = "inactive_account"


class InvalidTransfer(LedgerError):
	code = "invalid_transfer"


class BalanceLimitExceeded(LedgerError):
	code = "balance_limit_exceeded"


class InvalidTransition(LedgerError):
	"""
	Programming error: a terminal sync status was asked to change
	"""
	code = "invalid_transition"
