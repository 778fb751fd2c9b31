from django.apps import AppConfig


class CoreConfig(AppConfig):
	name = "core"
	verbose_name = "Club ledger"

	def ready(self):
		from . import receivers  # noqa: F401
