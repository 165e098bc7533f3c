import logging

from django.core import signing
from django.db import DatabaseError
from django.http import JsonResponse

from voting.exceptions import TransientInfraError
from voting.tokens import read_session_token

logger = logging.getLogger(__name__)


def _bearer_token(request) -> str:
    header = str(request.headers.get("Authorization") or "").strip()
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


class SessionTokenMiddleware:
    """Attach ``request.principal`` from an ``Authorization: Bearer`` credential.

    Credentials are minted by OTP verification (voters) or by the external
    admin login (operators). Invalid or expired tokens leave the request
    anonymous; endpoints decide whether that is acceptable.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.principal = None

        token = _bearer_token(request)
        if token:
            try:
                request.principal = read_session_token(token)
            except signing.SignatureExpired:
                logger.info("Rejected expired session token path=%s", request.path)
            except signing.BadSignature:
                logger.warning("Rejected invalid session token path=%s", request.path)

        return self.get_response(request)


class ServiceErrorMiddleware:
    """Turn infrastructure failures escaping a view into a generic 503 JSON body.

    These are never retried inline; the client retries the whole request.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not isinstance(exception, DatabaseError | TransientInfraError):
            return None

        logger.exception(
            "Infrastructure failure path=%s",
            request.path,
            exc_info=exception,
            extra={
                "event": "ballotbox.infra.unavailable",
                "component": "http",
                "outcome": "error",
                "error_type": type(exception).__name__,
            },
        )
        return JsonResponse({"message": "Service temporarily unavailable. Please try again."}, status=503)
