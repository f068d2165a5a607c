"""Error taxonomy shared by the adapters and the gateway.

Adapters raise one of the ``GatewayError`` subclasses below; the gateway
switches on ``error.kind`` to pick the HTTP status and never inspects the
message text. ``message`` is safe to return to callers, ``detail`` is for
logs only.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    NOT_SELECT = "not_select_error"
    FORBIDDEN_KEYWORD = "forbidden_keyword_error"
    MISSING_LIMIT = "missing_limit_error"
    TRANSLATION_UNAVAILABLE = "translation_unavailable_error"
    TRANSLATION_REFUSED = "translation_refused_error"
    EXECUTOR_UNCONFIGURED = "executor_unconfigured_error"
    AUTH = "auth_error"
    FORBIDDEN = "forbidden_error"
    RATE_LIMITED = "rate_limit_error"
    BAD_QUERY = "invalid_sql_error"
    TIMEOUT = "timeout_error"
    TRANSPORT = "transport_error"
    UPSTREAM = "upstream_error"
    PAYMENT_UNAVAILABLE = "payment_unavailable_error"
    CONFIGURATION = "configuration_error"
    INTERNAL = "query_execution_error"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_SELECT: 400,
    ErrorKind.FORBIDDEN_KEYWORD: 400,
    ErrorKind.MISSING_LIMIT: 400,
    ErrorKind.BAD_QUERY: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.TRANSLATION_REFUSED: 422,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.TRANSLATION_UNAVAILABLE: 503,
    ErrorKind.EXECUTOR_UNCONFIGURED: 503,
    ErrorKind.PAYMENT_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 500,
    ErrorKind.TRANSPORT: 500,
    ErrorKind.UPSTREAM: 500,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.INTERNAL: 500,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_BY_KIND.get(kind, 500)


class GatewayError(Exception):
    """Base for every failure the gateway knows how to report."""

    kind = ErrorKind.INTERNAL
    message = "Query execution failed"

    def __init__(self, detail: Optional[str] = None, message: Optional[str] = None):
        if message is not None:
            self.message = message
        self.detail = detail
        super().__init__(detail or self.message)

    @property
    def status_code(self) -> int:
        return status_for(self.kind)


class ValidationError(GatewayError):
    kind = ErrorKind.VALIDATION
    message = "Query is required and must be a string"


# SQL policy rejections
class SqlPolicyError(GatewayError):
    message = "Generated SQL was rejected by the query policy"


class NotSelectError(SqlPolicyError):
    kind = ErrorKind.NOT_SELECT
    message = "Only SELECT queries are allowed"


class ForbiddenKeywordError(SqlPolicyError):
    kind = ErrorKind.FORBIDDEN_KEYWORD
    message = "Forbidden SQL keyword detected"


class MissingLimitError(SqlPolicyError):
    kind = ErrorKind.MISSING_LIMIT
    message = "All queries must include a LIMIT clause"


# Translator
class TranslationUnavailableError(GatewayError):
    kind = ErrorKind.TRANSLATION_UNAVAILABLE
    message = "SQL generation service is unavailable"


class TranslationRefusedError(GatewayError):
    kind = ErrorKind.TRANSLATION_REFUSED
    message = "SQL generation service declined this question"


# Executor
class ExecutorUnconfiguredError(GatewayError):
    kind = ErrorKind.EXECUTOR_UNCONFIGURED
    message = "Query service is not configured"


class AuthError(GatewayError):
    kind = ErrorKind.AUTH
    message = "Query service authentication failed"


class ForbiddenError(GatewayError):
    kind = ErrorKind.FORBIDDEN
    message = "Query service access forbidden"


class RateLimitedError(GatewayError):
    kind = ErrorKind.RATE_LIMITED
    message = "Rate limit exceeded. Please try again later."


class BadQueryError(GatewayError):
    kind = ErrorKind.BAD_QUERY
    message = "Invalid SQL query"


class QueryTimeoutError(GatewayError):
    kind = ErrorKind.TIMEOUT
    message = "Query timeout. Please try a simpler query or add more specific filters."


class TransportError(GatewayError):
    kind = ErrorKind.TRANSPORT
    message = "Network error while contacting the query service"


class UpstreamError(GatewayError):
    kind = ErrorKind.UPSTREAM
    message = "Query service returned an unexpected error"


# Payments
class PaymentUnavailableError(GatewayError):
    kind = ErrorKind.PAYMENT_UNAVAILABLE
    message = "Payment facilitator is unavailable"


class ConfigurationError(GatewayError):
    kind = ErrorKind.CONFIGURATION
    message = "Service configuration error"
