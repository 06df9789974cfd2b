"""
Django settings for the winetours engine.

PostgreSQL is the production database. When POSTGRES_DB is not set the
engine falls back to a local SQLite file, which is enough for development
but does not provide row-level locking.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-winetours-key-change-in-production")

DEBUG = os.getenv("DEBUG", "True").lower() in ("true", "1", "yes")

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # Foundation
    "winetours.sequence",
    "winetours.idempotency",
    "winetours.audit",
    # Domain
    "winetours.rates",
    "winetours.proposals",
    "winetours.bookings",
    "winetours.timeclock",
    "winetours.invoicing",
]

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "postgres"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "OPTIONS": {
                "connect_timeout": 10,
            },
            "TEST": {
                "NAME": os.getenv("POSTGRES_TEST_DB", "test_winetours"),
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "winetours.sqlite3",
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = "America/Los_Angeles"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "winetours": {
            "handlers": ["console"],
            "level": os.getenv("WINETOURS_LOG_LEVEL", "DEBUG"),
            "propagate": False,
        },
    },
}

# Engine configuration (see winetours.conf for defaults)
WINETOURS = {
    "INVOICE_PREFIX": os.getenv("WINETOURS_INVOICE_PREFIX", "INV"),
    "OPERATIONS_EMAIL": os.getenv("WINETOURS_OPERATIONS_EMAIL", "office@example.com"),
    "NOTIFICATION_DISPATCHER": os.getenv(
        "WINETOURS_NOTIFICATION_DISPATCHER",
        "winetours.notifications.providers.ConsoleDispatcher",
    ),
    "PAYMENT_GATEWAY": os.getenv(
        "WINETOURS_PAYMENT_GATEWAY",
        "winetours.payments.gateway.FakePaymentGateway",
    ),
}
