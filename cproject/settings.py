# Django settings for the Chirp server.
#
# Deployment-specific values come from CHIRP_* environment variables;
# the test suite uses cproject.test_settings, which imports this module
# and overrides what differs for tests.
import logging
import os
from typing import Any, Literal

from django.core.exceptions import ImproperlyConfigured

DEPLOY_ROOT = os.path.realpath(os.path.dirname(os.path.dirname(__file__)))


def get_env_setting(name: str, default: str | None = None) -> str:
    value = os.environ.get(f"CHIRP_{name}", default)
    if value is None:
        raise ImproperlyConfigured(f"Missing CHIRP_{name} environment variable")
    return value


PRODUCTION = get_env_setting("DEPLOY_TYPE", "development") == "production"
DEVELOPMENT = not PRODUCTION
DEBUG = DEVELOPMENT and get_env_setting("DEBUG", "true") == "true"

TEST_SUITE = os.getenv("CHIRP_TEST_SUITE") == "true"
RUNNING_INSIDE_TORNADO = False

if PRODUCTION:
    SECRET_KEY = get_env_setting("SECRET_KEY")
    SHARED_SECRET = get_env_setting("SHARED_SECRET")
else:
    SECRET_KEY = get_env_setting("SECRET_KEY", "development-secret-key")
    SHARED_SECRET = get_env_setting("SHARED_SECRET", "development-shared-secret")

ALLOWED_HOSTS = get_env_setting("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

########################################################################
# DATABASE AND CACHES
########################################################################

DATABASES: dict[str, dict[str, Any]] = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": get_env_setting("DATABASE_PATH", os.path.join(DEPLOY_ROOT, "var", "chirp.db")),
        "ATOMIC_REQUESTS": False,
        "OPTIONS": {
            "timeout": 5,
        },
    },
}
DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

MEMCACHED_LOCATION = get_env_setting("MEMCACHED_LOCATION", "127.0.0.1:11211")
MEMCACHED_USERNAME = os.environ.get("CHIRP_MEMCACHED_USERNAME")
MEMCACHED_PASSWORD = os.environ.get("CHIRP_MEMCACHED_PASSWORD")

CACHES: dict[str, dict[str, object]] = {
    "default": {
        "BACKEND": "chirp.lib.singleton_bmemcached.SingletonBMemcached",
        "LOCATION": MEMCACHED_LOCATION,
        "OPTIONS": {
            "socket_timeout": 3600,
            "username": MEMCACHED_USERNAME,
            "password": MEMCACHED_PASSWORD,
            "pickle_protocol": 4,
        },
    },
}

########################################################################
# TORNADO
########################################################################

# Whether the live channels are served by a separate Tornado process;
# when False, events are processed in the Django process.
USING_TORNADO = get_env_setting("USING_TORNADO", "true") == "true"
TORNADO_PORT = int(get_env_setting("TORNADO_PORT", "9800"))
TORNADO_URL = f"http://127.0.0.1:{TORNADO_PORT}"

########################################################################
# DJANGO
########################################################################

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "chirp",
]

MIDDLEWARE = [
    "chirp.middleware.LogRequests",
    "chirp.middleware.JsonErrorHandler",
    "django.middleware.common.CommonMiddleware",
]

AUTH_USER_MODEL = "chirp.UserProfile"
ROOT_URLCONF = "cproject.urls"
WSGI_APPLICATION = "cproject.wsgi.application"

LANGUAGE_CODE = "en-us"
USE_I18N = True
TIME_ZONE = "UTC"
USE_TZ = True

APPEND_SLASH = False

########################################################################
# LOGGING SETTINGS
########################################################################

LOG_DIRECTORY = get_env_setting("LOG_DIRECTORY", os.path.join(DEPLOY_ROOT, "var", "log"))
SERVER_LOG_PATH = os.path.join(LOG_DIRECTORY, "server.log")
ERROR_FILE_LOG_PATH = os.path.join(LOG_DIRECTORY, "errors.log")
TORNADO_LOG_PATH = os.path.join(LOG_DIRECTORY, "tornado.log")
JSON_PERSISTENT_QUEUE_FILENAME_PATTERN = os.path.join(DEPLOY_ROOT, "var", "event_queues%s.json")

LOGGING_SHOW_MODULE = False
LOGGING_SHOW_PID = False

if not TEST_SUITE:
    os.makedirs(LOG_DIRECTORY, exist_ok=True)


def file_handler(
    filename: str,
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG",
    formatter: str = "default",
) -> dict[str, str]:
    return {
        "filename": filename,
        "level": level,
        "formatter": formatter,
        "class": "logging.handlers.WatchedFileHandler",
    }


def skip_200_and_304(record: logging.LogRecord) -> bool:
    # `status_code` is added by Django and is not an actual attribute
    # of LogRecord.
    return getattr(record, "status_code", None) not in [200, 304]


DEFAULT_CHIRP_HANDLERS = ["console", "file", "errors_file"]

LOGGING: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "()": "chirp.lib.logging_util.ChirpFormatter",
        },
    },
    "filters": {
        "skip_200_and_304": {
            "()": "django.utils.log.CallbackFilter",
            "callback": skip_200_and_304,
        },
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
        "errors_file": file_handler(ERROR_FILE_LOG_PATH, level="WARNING"),
        "file": file_handler(SERVER_LOG_PATH),
    },
    "loggers": {
        # root logger
        "": {
            "level": "INFO",
            "handlers": DEFAULT_CHIRP_HANDLERS,
        },
        "django": {},
        "django.request": {
            # 4xx responses are part of normal API usage; keep
            # tracebacks for 5xx errors only.
            "level": "ERROR",
        },
        "django.server": {
            "filters": ["skip_200_and_304"],
            "handlers": ["console", "file"],
            "propagate": False,
        },
        "django.utils.autoreload": {
            "level": "WARNING",
        },
        "chirp.events": {
            "level": "DEBUG" if DEBUG else "INFO",
        },
        "chirp.cache": {},
        "chirp.muted_users": {},
        "chirp.notes": {},
        "chirp.users": {},
        "chirp.requests": {
            "level": "INFO",
        },
    },
}

if TEST_SUITE:
    # Nothing is written to files from the test suite; tests that care
    # about log output use assertLogs.
    LOGGING["handlers"] = {
        "console": {
            "level": "WARNING",
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    LOGGING["loggers"][""]["handlers"] = ["console"]
    LOGGING["loggers"]["django.server"]["handlers"] = ["console"]
