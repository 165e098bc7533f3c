from __future__ import annotations

import os

wsgi_app = "config.wsgi:application"
chdir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "ballotbox_app")
bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Vote casting holds a row lock for the length of one request; threads keep
# polling dashboards from starving the voters.
workers = int(os.environ.get("GUNICORN_WORKERS", "4"))
threads = int(os.environ.get("GUNICORN_THREADS", "2"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
graceful_timeout = 20
max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "2000"))
max_requests_jitter = 200

accesslog = "-"
errorlog = "-"
capture_output = True
loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")
forwarded_allow_ips = "*"
# Request duration (%(M)s, milliseconds) is appended so slow casts show up in access logs.
access_log_format = '%({x-forwarded-for}i)s %(t)s "%(r)s" %(s)s %(b)s %(M)sms "%(a)s"'

_ACCESS_FILTERS = ["probe_lines", "dashboard_polls"]

logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "probe_lines": {"()": "config.logging_filters.HealthEndpointFilter"},
        "dashboard_polls": {"()": "config.logging_filters.DashboardPollFilter"},
    },
    "formatters": {
        "plain": {"format": "%(message)s"},
        "app": {"format": "[{asctime}] {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "access_out": {"class": "logging.StreamHandler", "formatter": "plain", "stream": "ext://sys.stdout"},
        "app_err": {"class": "logging.StreamHandler", "formatter": "app", "stream": "ext://sys.stderr"},
    },
    "loggers": {
        "gunicorn.access": {
            "handlers": ["access_out"],
            "filters": _ACCESS_FILTERS,
            "level": "INFO",
            "propagate": False,
        },
        "gunicorn.error": {"handlers": ["app_err"], "level": "INFO", "propagate": False},
    },
    "root": {"handlers": ["app_err"], "level": "INFO"},
}
