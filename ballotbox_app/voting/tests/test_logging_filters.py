import logging

from django.test import SimpleTestCase

from config.logging_filters import DashboardPollFilter, HealthEndpointFilter


def _record(msg: str, name: str = "django.server") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class LoggingFilterTests(SimpleTestCase):
    def test_health_endpoint_filter(self) -> None:
        filt = HealthEndpointFilter()

        self.assertFalse(filt.filter(_record('"GET /healthz HTTP/1.1" 200 12')))
        self.assertTrue(filt.filter(_record('"GET /healthz HTTP/1.1" 503 12')))
        self.assertTrue(filt.filter(_record('"GET /api/candidates HTTP/1.1" 200 12')))

    def test_health_endpoint_filter_handles_gunicorn_format(self) -> None:
        record = _record(
            '- - - [11/Jun/2024:10:49:08 +0000] "GET /readyz HTTP/1.1" 200 37 "-" "kube-probe/1.29"',
            name="gunicorn.access",
        )

        self.assertFalse(HealthEndpointFilter().filter(record))

    def test_dashboard_poll_filter(self) -> None:
        filt = DashboardPollFilter()

        self.assertFalse(filt.filter(_record('"GET /api/votes/results HTTP/1.1" 200 512')))
        self.assertFalse(filt.filter(_record('"GET /api/votes/stats HTTP/1.1" 304 0')))
        self.assertTrue(filt.filter(_record('"GET /api/votes/stats HTTP/1.1" 500 40')))
        self.assertTrue(filt.filter(_record('"POST /api/votes HTTP/1.1" 200 40')))
