import logging

_PROBE_PATHS: tuple[str, ...] = ("/healthz", "/readyz")

# Public dashboards poll these every few seconds during a live election.
_DASHBOARD_POLL_PATHS: tuple[str, ...] = ("/api/votes/stats", "/api/votes/results")


def _is_successful_hit(message: str, paths: tuple[str, ...]) -> bool:
    if not any(path in message for path in paths):
        return False
    return " 200 " in message or " 304 " in message


class HealthEndpointFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not _is_successful_hit(record.getMessage(), _PROBE_PATHS)


class DashboardPollFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not _is_successful_hit(record.getMessage(), _DASHBOARD_POLL_PATHS)
