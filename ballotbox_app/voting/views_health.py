from __future__ import annotations

import logging

from django.core.cache import cache
from django.db import connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)

_READINESS_CACHE_KEY = "ballotbox_readyz_probe"


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    # The rate limiter and results cache share the cache backend; voting cannot
    # proceed without it, so it is part of readiness alongside the database.
    try:
        connection.ensure_connection()
    except Exception as exc:
        logger.exception("Health check readyz failed: database")
        return JsonResponse({"status": "not ready", "database": "error", "error": str(exc)}, status=503)

    try:
        cache.set(_READINESS_CACHE_KEY, 1, timeout=5)
    except Exception as exc:
        logger.exception("Health check readyz failed: cache")
        return JsonResponse({"status": "not ready", "cache": "error", "error": str(exc)}, status=503)

    return JsonResponse({"status": "ready", "database": "ok", "cache": "ok"})
