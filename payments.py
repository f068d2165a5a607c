"""Pay-per-query access control using the x402 protocol.

The gateway does not verify or settle payments itself. A client attaches a
payment payload in the ``X-PAYMENT`` header; the gateway hands it with its
payment requirements to an x402 facilitator (verify before the query runs,
settle after it succeeded). Without a pay-to address the gate is
UNCONFIGURED and admits everything.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx
from x402.common import find_matching_payment_requirements, process_price_to_atomic_amount, x402_VERSION
from x402.encoding import safe_base64_decode, safe_base64_encode
from x402.facilitator import FacilitatorClient, FacilitatorConfig
from x402.types import PaymentPayload, PaymentRequirements, x402PaymentRequiredResponse

from errors import ConfigurationError, PaymentUnavailableError

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
DESCRIPTION = (
    "Natural Language Blockchain Query - Pay per query to convert natural "
    "language to SQL and execute against Base blockchain data"
)
NETWORK_ALIASES = {"base-mainnet": "base"}


class GateState(str, Enum):
    UNCONFIGURED = "unconfigured"
    ACTIVE = "active"


@dataclass(frozen=True)
class VerifiedPayment:
    payload: PaymentPayload
    requirements: PaymentRequirements
    payer: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    admitted: bool
    enforced: bool
    challenge: Optional[dict[str, Any]] = None
    payment: Optional[VerifiedPayment] = None


@dataclass(frozen=True)
class Settlement:
    success: bool
    response_header: Optional[str] = None
    challenge: Optional[dict[str, Any]] = None


def decode_payment_header(header: str) -> Optional[PaymentPayload]:
    try:
        return PaymentPayload(**json.loads(safe_base64_decode(header)))
    except (ValueError, TypeError):
        return None


class PaymentGate:
    """x402 gate in front of the query pipeline."""

    def __init__(
        self,
        pay_to: str = "",
        price_usdc: str = "0.01",
        network: str = "base-mainnet",
        facilitator_url: str = "https://x402.org/facilitator",
        max_timeout_seconds: int = 60,
        facilitator: Optional[FacilitatorClient] = None,
    ):
        self.pay_to = pay_to
        self.price_usdc = price_usdc
        self.network = NETWORK_ALIASES.get(network, network)
        self.max_timeout_seconds = max_timeout_seconds

        price = price_usdc if str(price_usdc).startswith("$") else f"${price_usdc}"
        try:
            self.max_amount, self.asset, self.eip712_domain = process_price_to_atomic_amount(
                price, self.network
            )
        except (ValueError, ArithmeticError) as e:
            raise ConfigurationError(
                detail=f"X402_PRICE_USDC={price_usdc!r} NETWORK={network!r}: {e}"
            ) from e
        if int(self.max_amount) <= 0:
            raise ConfigurationError(detail=f"X402_PRICE_USDC={price_usdc!r} must be positive")

        self.facilitator = facilitator or FacilitatorClient(FacilitatorConfig(url=facilitator_url))

        if self.state is GateState.UNCONFIGURED:
            logger.warning("X402_PAY_TO not configured. x402 payments will not be enforced.")

    @property
    def state(self) -> GateState:
        return GateState.ACTIVE if self.pay_to else GateState.UNCONFIGURED

    @property
    def configured(self) -> bool:
        return self.state is GateState.ACTIVE

    def requirements(self, resource: str) -> PaymentRequirements:
        return PaymentRequirements(
            scheme="exact",
            network=self.network,
            max_amount_required=self.max_amount,
            resource=resource,
            description=DESCRIPTION,
            mime_type="application/json",
            pay_to=self.pay_to,
            max_timeout_seconds=self.max_timeout_seconds,
            asset=self.asset,
            output_schema=None,
            extra=self.eip712_domain,
        )

    def challenge(self, reason: str, requirements: PaymentRequirements) -> dict[str, Any]:
        return x402PaymentRequiredResponse(
            x402_version=x402_VERSION,
            accepts=[requirements],
            error=reason,
        ).model_dump(by_alias=True)

    async def authorize(self, payment_header: Optional[str], resource: str) -> AccessDecision:
        if self.state is GateState.UNCONFIGURED:
            return AccessDecision(admitted=True, enforced=False)

        requirements = self.requirements(resource)
        if not payment_header:
            return self._refuse(f"{PAYMENT_HEADER} header is required", requirements)

        payment = decode_payment_header(payment_header)
        if payment is None:
            return self._refuse("Invalid or malformed payment header", requirements)

        selected = find_matching_payment_requirements([requirements], payment)
        if selected is None:
            return self._refuse("No matching payment requirements found", requirements)

        try:
            verdict = await self.facilitator.verify(payment, selected)
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentUnavailableError(detail=f"facilitator verify: {type(e).__name__}: {e}") from e

        if verdict.is_valid:
            return AccessDecision(
                admitted=True, enforced=True,
                payment=VerifiedPayment(payment, selected, verdict.payer),
            )

        reason = verdict.invalid_reason or "Payment verification failed"
        logger.info("x402 payment rejected: %s", reason)
        return self._refuse(reason, requirements)

    async def settle(self, decision: AccessDecision) -> Settlement:
        """Settle a verified payment once the query has produced its result."""
        if decision.payment is None:
            return Settlement(success=True)

        payment = decision.payment
        try:
            receipt = await self.facilitator.settle(payment.payload, payment.requirements)
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentUnavailableError(detail=f"facilitator settle: {type(e).__name__}: {e}") from e

        if receipt.success:
            return Settlement(
                success=True,
                response_header=safe_base64_encode(receipt.model_dump_json(by_alias=True)),
            )

        reason = receipt.error_reason or "Payment settlement failed"
        logger.warning("x402 settlement failed: %s", reason)
        return Settlement(success=False, challenge=self.challenge(reason, payment.requirements))

    def _refuse(self, reason: str, requirements: PaymentRequirements) -> AccessDecision:
        return AccessDecision(admitted=False, enforced=True, challenge=self.challenge(reason, requirements))
