import base64
import json

import httpx
import pytest

from errors import ConfigurationError, PaymentUnavailableError
from payments import GateState, PaymentGate, decode_payment_header
from tests.conftest import PAYER, PAYMENT, FakeFacilitator, encode_payment

PAY_TO = "0x1111111111111111111111111111111111111111"
RESOURCE = "http://test/api/query"


def make_gate(facilitator, **kwargs):
    return PaymentGate(pay_to=PAY_TO, facilitator=facilitator, **kwargs)


def test_price_and_network_become_usdc_requirements():
    gate = make_gate(FakeFacilitator(), price_usdc="$1.5", network="base-mainnet")

    requirements = gate.requirements(RESOURCE)

    assert gate.network == "base"
    assert requirements.max_amount_required == "1500000"
    assert requirements.asset == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


@pytest.mark.parametrize(
    "kwargs",
    [{"price_usdc": "free"}, {"price_usdc": "0"}, {"network": "solana"}],
)
def test_bad_price_or_network_is_a_configuration_error(kwargs):
    with pytest.raises(ConfigurationError):
        PaymentGate(pay_to=PAY_TO, **kwargs)


def test_decode_payment_header():
    payment = decode_payment_header(encode_payment())

    assert payment.scheme == "exact"
    assert payment.network == "base"
    assert decode_payment_header("not base64 !!") is None
    assert decode_payment_header(encode_payment([1, 2])) is None
    assert decode_payment_header(encode_payment({"x402Version": 1, "payload": {}})) is None


@pytest.mark.asyncio
async def test_unconfigured_gate_admits_without_enforcement():
    facilitator = FakeFacilitator()
    gate = PaymentGate(pay_to="", facilitator=facilitator)

    decision = await gate.authorize(None, RESOURCE)
    settlement = await gate.settle(decision)

    assert gate.state is GateState.UNCONFIGURED
    assert decision.admitted is True
    assert decision.enforced is False
    assert settlement.success is True
    assert settlement.response_header is None
    assert facilitator.calls == []


@pytest.mark.asyncio
async def test_missing_payment_header_yields_challenge():
    facilitator = FakeFacilitator()
    gate = make_gate(facilitator, price_usdc="0.05", network="base-sepolia")

    decision = await gate.authorize(None, RESOURCE)

    assert decision.admitted is False
    assert decision.enforced is True
    assert facilitator.calls == []
    challenge = decision.challenge
    assert challenge["x402Version"] == 1
    assert "X-PAYMENT" in challenge["error"]
    (requirement,) = challenge["accepts"]
    assert requirement["scheme"] == "exact"
    assert requirement["network"] == "base-sepolia"
    assert requirement["maxAmountRequired"] == "50000"
    assert requirement["payTo"] == PAY_TO
    assert requirement["resource"] == RESOURCE
    assert requirement["asset"] == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


@pytest.mark.asyncio
async def test_malformed_payment_header_yields_challenge():
    facilitator = FakeFacilitator()
    gate = make_gate(facilitator)

    decision = await gate.authorize("%%%", RESOURCE)

    assert decision.admitted is False
    assert decision.challenge["error"] == "Invalid or malformed payment header"
    assert facilitator.calls == []


@pytest.mark.asyncio
async def test_payment_for_another_network_is_not_sent_to_facilitator():
    facilitator = FakeFacilitator()
    gate = make_gate(facilitator, network="base-sepolia")

    decision = await gate.authorize(encode_payment(), RESOURCE)

    assert decision.admitted is False
    assert decision.challenge["error"] == "No matching payment requirements found"
    assert facilitator.calls == []


@pytest.mark.asyncio
async def test_valid_payment_is_verified_then_settled():
    facilitator = FakeFacilitator()
    gate = make_gate(facilitator)

    decision = await gate.authorize(encode_payment(), RESOURCE)
    settlement = await gate.settle(decision)

    assert decision.admitted is True
    assert decision.enforced is True
    assert decision.payment.payer == PAYER
    assert facilitator.actions == ["verify", "settle"]
    _, payment, requirements = facilitator.calls[0]
    assert payment.model_dump(by_alias=True)["payload"]["signature"] == PAYMENT["payload"]["signature"]
    assert requirements.network == "base"
    assert requirements.max_amount_required == "10000"
    assert requirements.resource == RESOURCE
    assert settlement.success is True
    receipt = json.loads(base64.b64decode(settlement.response_header))
    assert receipt["transaction"] == "0xtx"
    assert receipt["success"] is True


@pytest.mark.asyncio
async def test_invalid_payment_returns_facilitator_reason():
    facilitator = FakeFacilitator(valid=False, invalid_reason="insufficient_funds")
    gate = make_gate(facilitator)

    decision = await gate.authorize(encode_payment(), RESOURCE)

    assert decision.admitted is False
    assert decision.payment is None
    assert decision.challenge["error"] == "insufficient_funds"
    assert facilitator.actions == ["verify"]


@pytest.mark.asyncio
async def test_failed_settlement_returns_challenge():
    facilitator = FakeFacilitator(settled=False, error_reason="invalid_transaction_state")
    gate = make_gate(facilitator)

    decision = await gate.authorize(encode_payment(), RESOURCE)
    settlement = await gate.settle(decision)

    assert settlement.success is False
    assert settlement.response_header is None
    assert settlement.challenge["error"] == "invalid_transaction_state"
    assert settlement.challenge["accepts"][0]["resource"] == RESOURCE


@pytest.mark.asyncio
async def test_unreachable_facilitator_is_unavailable():
    request = httpx.Request("POST", "https://x402.org/facilitator/verify")
    gate = make_gate(FakeFacilitator(error=httpx.ConnectError("down", request=request)))

    with pytest.raises(PaymentUnavailableError):
        await gate.authorize(encode_payment(), RESOURCE)


@pytest.mark.asyncio
async def test_facilitator_error_during_settlement_is_unavailable():
    facilitator = FakeFacilitator()
    gate = make_gate(facilitator)
    decision = await gate.authorize(encode_payment(), RESOURCE)

    facilitator.error = ValueError("facilitator answered 502")
    with pytest.raises(PaymentUnavailableError):
        await gate.settle(decision)
