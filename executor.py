"""Read-only SQL execution against the CDP SQL API (Base blockchain data)."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

import cdp_auth
from errors import (
    AuthError,
    BadQueryError,
    ExecutorUnconfiguredError,
    ForbiddenError,
    GatewayError,
    QueryTimeoutError,
    RateLimitedError,
    TransportError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

QUERY_PATH = "/v2/data/query/run"
HEALTH_CHECK_SQL = "SELECT 1 as test LIMIT 1"

STATUS_ERRORS = {
    400: BadQueryError,
    401: AuthError,
    403: ForbiddenError,
    429: RateLimitedError,
}


@dataclass(frozen=True)
class ExecutionResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: Optional[Union[int, float]] = None
    cached: bool = False
    query_id: Optional[str] = None


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    error_type: Optional[str] = None


def _parse_number(value: Optional[str]) -> Optional[Union[int, float]]:
    """Integral values as int, fractional ones as reported, anything else None."""
    if value is None:
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        number = math.nan
    if not math.isfinite(number):
        logger.debug("Unusable x-execution-time header: %r", value)
        return None
    return int(number) if number.is_integer() else number


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return str(body.get("errorMessage") or body.get("message") or body)
    return str(body)


def parse_result(response: httpx.Response) -> ExecutionResult:
    """Rows from the body, metadata from the response headers, as reported."""
    try:
        body = response.json()
    except ValueError as e:
        raise UpstreamError(detail="query service returned a non-JSON body") from e

    rows = body.get("result", []) if isinstance(body, dict) else body
    if not isinstance(rows, list):
        raise UpstreamError(detail=f"unexpected result type {type(rows).__name__}")

    return ExecutionResult(
        rows=rows,
        row_count=len(rows),
        execution_time_ms=_parse_number(response.headers.get("x-execution-time")),
        cached=response.headers.get("x-cache-status", "").upper() == "HIT",
        query_id=response.headers.get("x-query-id"),
    )


class CdpSqlExecutor:
    """Execute SQL against the CDP SQL API.

    One ``httpx.AsyncClient`` is held for the process lifetime; call
    ``aclose()`` on shutdown.
    """

    def __init__(
        self,
        key_name: str,
        private_key: str,
        base_url: str = "https://api.cdp.coinbase.com/platform",
        timeout_s: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_name = key_name
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.client = httpx.AsyncClient(timeout=timeout_s, transport=transport)
        if not self.configured:
            logger.warning("CDP API credentials not configured. SQL queries will not work.")

    @property
    def configured(self) -> bool:
        return bool(self.key_name and self.private_key)

    @property
    def query_url(self) -> str:
        return f"{self.base_url}{QUERY_PATH}"

    async def execute(self, sql: str) -> ExecutionResult:
        if not self.configured:
            raise ExecutorUnconfiguredError(
                detail="set CDP_API_KEY_NAME and CDP_API_KEY_PRIVATE_KEY"
            )

        token = cdp_auth.build_bearer_token(
            self.key_name, self.private_key, cdp_auth.request_uri("POST", self.query_url)
        )

        try:
            response = await self.client.post(
                self.query_url,
                json={"sql": sql},
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(detail=f"no response within {self.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise TransportError(detail=f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            detail = f"CDP SQL API HTTP {response.status_code}: {_error_message(response)}"
            error_cls = STATUS_ERRORS.get(response.status_code, UpstreamError)
            raise error_cls(detail=detail)

        return parse_result(response)

    async def test_connection(self) -> ConnectionCheck:
        """Run a trivial query; never raises for upstream failures."""
        try:
            await self.execute(HEALTH_CHECK_SQL)
        except GatewayError as e:
            logger.warning("CDP connection check failed: %s", e.detail or e.message)
            return ConnectionCheck(ok=False, error_type=e.kind.value)
        return ConnectionCheck(ok=True)

    async def aclose(self) -> None:
        await self.client.aclose()
