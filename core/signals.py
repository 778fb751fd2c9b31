"""Signals the ledger emits.

sync_requested: the Connectivity Monitor saw a confirmed offline -> online
transition (or owes one after debouncing). Receivers get `state`.

operation_rejected: the remote store refused a pending operation. Receivers
get `operation`, `conflict` and `reason`; the cashier UI must surface it.
"""

from django.dispatch import Signal

sync_requested = Signal()
operation_rejected = Signal()
