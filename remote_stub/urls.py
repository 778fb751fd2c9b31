from django.urls import path
from .views import ping, get_balance, submit_operation


urlpatterns = [
	path("ping", ping),
	path("balance/<str:account_id>", get_balance),
	path("operations", submit_operation),
]
