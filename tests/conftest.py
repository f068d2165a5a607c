import base64
import json

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from x402.types import SettleResponse, VerifyResponse

from errors import GatewayError
from executor import ConnectionCheck, ExecutionResult
from gateway import QueryGateway
from payments import PaymentGate
from server import create_app
from translator import Translator

DEFAULT_SQL = "SELECT hash, value FROM base.transactions ORDER BY value DESC LIMIT 10"

DEFAULT_ROWS = [
    {"hash": "0xabc", "value": "1000"},
    {"hash": "0xdef", "value": "900"},
]

PAYER = "0x9999999999999999999999999999999999999999"

PAYMENT = {
    "x402Version": 1,
    "scheme": "exact",
    "network": "base",
    "payload": {
        "signature": "0x" + "ab" * 65,
        "authorization": {
            "from": PAYER,
            "to": "0x1111111111111111111111111111111111111111",
            "value": "10000",
            "validAfter": "0",
            "validBefore": "9999999999",
            "nonce": "0x" + "00" * 32,
        },
    },
}


def encode_payment(payment=PAYMENT) -> str:
    return base64.b64encode(json.dumps(payment).encode()).decode()


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeTranslator(Translator):
    provider = "fake"

    def __init__(self, completion=DEFAULT_SQL, error: GatewayError | None = None):
        super().__init__()
        self.completion = completion
        self.error = error
        self.calls = []

    async def _complete(self, system_prompt, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.completion


class FakeExecutor:
    def __init__(self, result: ExecutionResult | None = None, error: GatewayError | None = None,
                 clock: FakeClock | None = None, delay_s: float = 0.0, configured: bool = True):
        self.result = result or ExecutionResult(
            rows=DEFAULT_ROWS, row_count=len(DEFAULT_ROWS), execution_time_ms=42,
            cached=False, query_id="q-123",
        )
        self.error = error
        self.clock = clock
        self.delay_s = delay_s
        self.configured = configured
        self.calls = []

    async def execute(self, sql):
        self.calls.append(sql)
        if self.clock:
            self.clock.advance(self.delay_s)
        if self.error:
            raise self.error
        return self.result

    async def test_connection(self):
        if self.error:
            return ConnectionCheck(ok=False, error_type=self.error.kind.value)
        return ConnectionCheck(ok=True)

    async def aclose(self):
        pass


class FakeFacilitator:
    """Stands in for the x402 facilitator client; records verify/settle calls."""

    def __init__(self, valid=True, invalid_reason=None, settled=True, error_reason=None, error=None):
        self.verdict = VerifyResponse(is_valid=valid, invalid_reason=invalid_reason, payer=PAYER)
        self.receipt = SettleResponse(
            success=settled,
            error_reason=error_reason,
            transaction="0xtx" if settled else None,
            network="base" if settled else None,
            payer=PAYER,
        )
        self.error = error
        self.calls = []

    async def verify(self, payment, requirements):
        self.calls.append(("verify", payment, requirements))
        if self.error:
            raise self.error
        return self.verdict

    async def settle(self, payment, requirements):
        self.calls.append(("settle", payment, requirements))
        if self.error:
            raise self.error
        return self.receipt

    @property
    def actions(self):
        return [action for action, _, _ in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def executor(clock):
    return FakeExecutor(clock=clock)


# Gate with no pay-to address: admits everything
@pytest.fixture
def open_gate():
    return PaymentGate(pay_to="")


@pytest.fixture
def gateway(translator, executor, open_gate, clock):
    return QueryGateway(translator, executor, open_gate, clock=clock)


@pytest_asyncio.fixture
async def client(gateway):
    app = create_app(gateway=gateway, cors_origins=["*"])
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
