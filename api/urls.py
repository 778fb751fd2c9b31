"""Public API surface of the till.

- /cashier/*: the three cashier actions (deposit, pay tab, transfer tab)
- /members, /demo/seed: member registry
- /sync, /connectivity: reconciliation trigger and transport signals
- /snapshot, /operations, /sync/status, /conflicts: read-only views
"""

from django.urls import path
from .views_demo import seed, members, deactivate
from .views_ops import health, csrf, deposit, pay_tab, transfer_tab, sync, connectivity, prune, resolve_conflict
from .views_read import snapshot, operations, export_operations, sync_status, conflicts


urlpatterns = [
	path("health", health),
	path("csrf", csrf),
	path("demo/seed", seed),
	path("members", members),
	path("members/<str:member_id>/deactivate", deactivate),
	path("cashier/deposit", deposit),
	path("cashier/pay", pay_tab),
	path("cashier/transfer", transfer_tab),
	path("snapshot", snapshot),
	path("operations", operations),
	path("operations/export", export_operations),
	path("operations/prune", prune),
	path("sync", sync),
	path("sync/status", sync_status),
	path("connectivity", connectivity),
	path("conflicts", conflicts),
	path("conflicts/<int:conflict_id>/resolve", resolve_conflict),
]
