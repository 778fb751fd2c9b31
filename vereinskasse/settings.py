"""Django settings for the Vereins-Kasse club ledger.


One till (device) runs this project locally:
- Cashier actions (deposit, pay tab, transfer tab) are written to a local SQLite ledger
- Pending operations sync to a remote store when connectivity is confirmed


Running without any remote store (KASSE_REMOTE_STORE=disabled) is the default.
"""

import os
from datetime import timedelta
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

#######################
# Ledger / sync
# Stable id of this till; generated and persisted on first use when empty.
KASSE_DEVICE_ID = os.getenv("KASSE_DEVICE_ID", "")

# Remote store: "disabled" (local-only), "stub" (in-process remote_stub app) or "http".
KASSE_REMOTE_STORE = os.getenv("KASSE_REMOTE_STORE", "disabled")
KASSE_REMOTE_URL = os.getenv("KASSE_REMOTE_URL", "")
KASSE_REMOTE_TIMEOUT = float(os.getenv("KASSE_REMOTE_TIMEOUT", "5"))

# Units a member may go below zero on pay/transfer (floor = -limit).
KASSE_CREDIT_LIMIT = int(os.getenv("KASSE_CREDIT_LIMIT", "0"))

KASSE_DEBOUNCE_SECONDS = float(os.getenv("KASSE_DEBOUNCE_SECONDS", "2"))
KASSE_RETENTION_DAYS = int(os.getenv("KASSE_RETENTION_DAYS", "7"))
KASSE_STALL_ATTEMPTS = int(os.getenv("KASSE_STALL_ATTEMPTS", "5"))
KASSE_SYNC_LEASE_SECONDS = int(os.getenv("KASSE_SYNC_LEASE_SECONDS", "60"))

# Raise on illegal sync-status transitions (development); log and ignore otherwise.
KASSE_STRICT_TRANSITIONS = env_bool("KASSE_STRICT_TRANSITIONS", "1" if DEBUG else "0")
#######################


INSTALLED_APPS = [
	"django.contrib.contenttypes",
	"django.contrib.auth",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core.apps.CoreConfig",
	"api",
	"remote_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "vereinskasse.urls"
WSGI_APPLICATION = "vereinskasse.wsgi.application"
TEMPLATES = [
	{
		"BACKEND": "django.template.backends.django.DjangoTemplates",
		"DIRS": [],
		"APP_DIRS": True,
		"OPTIONS": {
			"context_processors": [
				"django.template.context_processors.debug",
				"django.template.context_processors.request",
				"django.contrib.auth.context_processors.auth",
				"django.contrib.messages.context_processors.messages",
			],
		},
	},
]


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "vereinskasse"),
            "USER": os.getenv("POSTGRES_USER", "vereinskasse"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "vereinskasse"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("KASSE_DB_PATH", str(BASE_DIR / "db.sqlite3")),
            "OPTIONS": {"timeout": 20},
        }
    }


AUTH_PASSWORD_VALIDATORS = []


LANGUAGE_CODE = "de-de"
TIME_ZONE = "Europe/Berlin"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Celery: a single till needs no broker, so tasks run inline unless a broker is configured.
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", None)
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", "1")
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TIME_LIMIT = 5 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 4 * 60
CELERY_BEAT_SCHEDULE = {
	"poll-connectivity": {
		"task": "core.tasks.poll_connectivity",
		"schedule": timedelta(minutes=1),
	},
	"prune-synced-operations": {
		"task": "core.tasks.prune_synced_operations",
		"schedule": timedelta(days=1),
	},
}


LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")
LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"verbose": {
			"format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
			"style": "{",
		},
		"simple": {
			"format": "{levelname} {message}",
			"style": "{",
		},
	},
	"handlers": {
		"console": {
			"level": "DEBUG",
			"class": "logging.StreamHandler",
			"formatter": "verbose",
		},
	},
	"root": {
		"handlers": ["console"],
		"level": "WARNING",
	},
	"loggers": {
		"django": {
			"handlers": ["console"],
			"level": "INFO",
			"propagate": False,
		},
		"celery": {
			"handlers": ["console"],
			"level": "INFO",
			"propagate": False,
		},
		"core": {
			"level": LOG_LEVEL,
		},
		"api": {
			"level": LOG_LEVEL,
		},
		"remote_stub": {
			"level": LOG_LEVEL,
		},
	},
}
