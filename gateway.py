"""Request pipeline: payment gate -> LLM translation -> SQL policy -> execution.

Each request walks RECEIVED -> AUTHORIZED -> TRANSLATED -> VALIDATED ->
EXECUTED -> RESPONDED and stops at the first failure. Nothing is retried and
nothing is kept between requests.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError

import sql_policy
from errors import GatewayError, ValidationError
from executor import CdpSqlExecutor, ExecutionResult
from payments import PAYMENT_RESPONSE_HEADER, AccessDecision, PaymentGate
from schema_catalog import BASE_SCHEMA, SchemaDescription
from translator import Translator

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    RECEIVED = "received"
    AUTHORIZED = "authorized"
    TRANSLATED = "translated"
    VALIDATED = "validated"
    EXECUTED = "executed"
    RESPONDED = "responded"


class QueryRequest(BaseModel):
    """Inbound question. ``query`` is accepted for older clients."""

    model_config = ConfigDict(frozen=True)

    text: StrictStr = Field(validation_alias=AliasChoices("text", "query"))


@dataclass
class GatewayResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    # Last stage completed before the response was built
    stage: Stage = Stage.RECEIVED


def parse_request(payload: Any, max_length: int) -> QueryRequest:
    if not isinstance(payload, dict):
        raise ValidationError(message="Request body must be a JSON object")
    try:
        request = QueryRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(detail=str(e)) from e
    if not request.text.strip():
        raise ValidationError(detail="empty query")
    if len(request.text) > max_length:
        raise ValidationError(
            message=f"Query too long. Maximum {max_length} characters allowed."
        )
    return request


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class QueryGateway:
    """Composes the gate and adapters. All collaborators are injected."""

    def __init__(
        self,
        translator: Translator,
        executor: CdpSqlExecutor,
        gate: PaymentGate,
        catalog: SchemaDescription = BASE_SCHEMA,
        max_query_length: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.translator = translator
        self.executor = executor
        self.gate = gate
        self.catalog = catalog
        self.max_query_length = max_query_length
        self.clock = clock

    def _elapsed_ms(self, started: float) -> int:
        return int((self.clock() - started) * 1000)

    async def handle(
        self,
        payload: Any,
        payment_header: Optional[str] = None,
        resource: str = "",
    ) -> GatewayResponse:
        started = self.clock()
        stage = Stage.RECEIVED

        try:
            request = parse_request(payload, self.max_query_length)

            decision = await self.gate.authorize(payment_header, resource)
            if not decision.admitted:
                return self._payment_required(decision.challenge, started, stage)
            stage = Stage.AUTHORIZED

            logger.info("Processing query: %r", request.text)
            candidate = await self.translator.translate(request.text, self.catalog)
            stage = Stage.TRANSLATED
            logger.info("Generated SQL: %s", candidate.raw)

            sql_policy.ensure_valid(candidate.raw)
            stage = Stage.VALIDATED

            result = await self.executor.execute(candidate.raw)
            stage = Stage.EXECUTED

            settlement = await self.gate.settle(decision)
            if not settlement.success:
                return self._payment_required(settlement.challenge, started, stage)

            headers = {}
            if settlement.response_header:
                headers[PAYMENT_RESPONSE_HEADER] = settlement.response_header
            return self._success(request, candidate.raw, result, decision, headers, started)

        except GatewayError as e:
            logger.warning(
                "Query failed after stage %s: %s (%s)", stage.value, e.kind.value, e.detail or e.message
            )
            return self._failure(e, stage, started)
        except Exception as e:
            logger.exception("Unhandled error after stage %s", stage.value)
            return self._failure(GatewayError(detail=repr(e)), stage, started)

    def _success(
        self,
        request: QueryRequest,
        sql: str,
        result: ExecutionResult,
        decision: AccessDecision,
        headers: dict[str, str],
        started: float,
    ) -> GatewayResponse:
        body = {
            "originalQuery": request.text,
            "generatedQuery": sql,
            "result": {"rows": result.rows, "rowCount": result.row_count},
            "metadata": {
                "executionTimeMs": result.execution_time_ms,
                "totalExecutionTimeMs": self._elapsed_ms(started),
                "cached": result.cached,
                "queryId": result.query_id,
                "timestamp": _timestamp(),
                "paymentEnforced": decision.enforced,
            },
        }
        return GatewayResponse(200, body, headers, Stage.RESPONDED)

    def _payment_required(self, challenge: dict[str, Any], started: float, stage: Stage) -> GatewayResponse:
        body = dict(challenge)
        body["metadata"] = {
            "totalExecutionTimeMs": self._elapsed_ms(started),
            "timestamp": _timestamp(),
        }
        return GatewayResponse(402, body, {}, stage)

    def _failure(self, error: GatewayError, stage: Stage, started: float) -> GatewayResponse:
        body = {
            "error": error.message,
            "type": error.kind.value,
            "metadata": {
                "totalExecutionTimeMs": self._elapsed_ms(started),
                "timestamp": _timestamp(),
            },
        }
        return GatewayResponse(error.status_code, body, {}, stage)
