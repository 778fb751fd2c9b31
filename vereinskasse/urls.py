"""URL routing for the till API + the local remote store stub.


The /api/ namespace is what the cashier UI talks to; /stub/remote/ exposes the
deterministic remote store. In production the stub is replaced by a real service.
"""

from django.urls import path, include


urlpatterns = [
	path("api/", include("api.urls")),
	path("stub/remote/", include("remote_stub.urls")),
]
