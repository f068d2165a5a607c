#!/usr/bin/env python3
"""
Natural Language Blockchain Query API.

Provides:
- POST /api/query     natural language -> SQL -> CDP SQL API -> rows (pay per query via x402)
- GET  /api/health    configuration and connectivity of each backend
- GET  /api/examples  sample questions
- GET  /              service descriptor

Run: python server.py   (or: uvicorn server:create_app --factory)
Check configuration: python server.py --check
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from errors import ConfigurationError
from example_queries import EXAMPLES
from executor import CdpSqlExecutor
from gateway import GatewayResponse, QueryGateway
from payments import PAYMENT_HEADER, PAYMENT_RESPONSE_HEADER, PaymentGate
from translator import build_translator

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
DISCONNECT_POLL_S = 0.25

ENDPOINTS = {
    "query": "POST /api/query",
    "health": "GET /api/health",
    "examples": "GET /api/examples",
}


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_gateway() -> QueryGateway:
    """Construct every collaborator once from process configuration."""
    translator = build_translator(
        config.LLM_PROVIDER,
        anthropic_api_key=config.ANTHROPIC_API_KEY,
        openai_api_key=config.OPENAI_API_KEY,
        model=config.LLM_MODEL,
        timeout_s=config.LLM_TIMEOUT_S,
        max_tokens=config.LLM_MAX_TOKENS,
    )
    executor = CdpSqlExecutor(
        key_name=config.CDP_API_KEY_NAME,
        private_key=config.CDP_API_KEY_PRIVATE_KEY,
        base_url=config.CDP_API_BASE_URL,
        timeout_s=config.QUERY_TIMEOUT_S,
    )
    gate = PaymentGate(
        pay_to=config.X402_PAY_TO,
        price_usdc=config.X402_PRICE_USDC,
        network=config.NETWORK,
        facilitator_url=config.X402_FACILITATOR_URL,
    )
    return QueryGateway(translator, executor, gate, max_query_length=config.MAX_QUERY_LENGTH)


class RequestLogMiddleware:
    """Log method, path, status and duration of every HTTP request."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        t0 = time.monotonic()
        status = {"code": 500}

        async def send_with_status(message):
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            duration_ms = int((time.monotonic() - t0) * 1000)
            logger.info("%s %s -> %s (%dms)", scope["method"], scope["path"], status["code"], duration_ms)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "type": error_type, "timestamp": _timestamp()},
    )


def _render(result: GatewayResponse) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)


async def run_until_disconnect(request: Request, coro) -> Optional[Any]:
    """Await ``coro``; cancel it and return None if the client goes away first."""
    task = asyncio.ensure_future(coro)
    while not task.done():
        await asyncio.wait({task}, timeout=DISCONNECT_POLL_S)
        if task.done():
            break
        if await request.is_disconnected():
            logger.info("Client disconnected from %s; cancelling in-flight query", request.url.path)
            task.cancel()
            await asyncio.wait({task})
            return None
    return task.result()


def create_app(
    gateway: Optional[QueryGateway] = None,
    max_body_bytes: int = config.MAX_BODY_BYTES,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    owns_gateway = gateway is None
    gateway = gateway or build_gateway()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_gateway:
            await gateway.translator.aclose()
            await gateway.executor.aclose()

    app = FastAPI(title="Natural Language Blockchain Query API", version=VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else config.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[PAYMENT_RESPONSE_HEADER],
    )
    app.add_middleware(RequestLogMiddleware)
    app.state.gateway = gateway

    router = APIRouter(prefix="/api", tags=["Query API"])

    @router.post("/query")
    async def api_query(request: Request):
        """Natural language -> SQL -> execute -> results. Requires x402 payment when enabled."""
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_body_bytes:
            return _error(413, f"Request body exceeds {max_body_bytes} bytes", "payload_too_large")

        raw = await request.body()
        if len(raw) > max_body_bytes:
            return _error(413, f"Request body exceeds {max_body_bytes} bytes", "payload_too_large")

        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            return _error(400, "Invalid JSON in request body", "json_parse_error")

        result = await run_until_disconnect(
            request,
            gateway.handle(
                payload,
                payment_header=request.headers.get(PAYMENT_HEADER),
                resource=str(request.url),
            ),
        )
        if result is None:
            return _error(499, "Client closed request", "client_disconnected")
        return _render(result)

    @router.get("/health")
    async def api_health():
        """Configuration and connectivity of each backend."""
        services = {
            "llm": "configured" if gateway.translator.configured else "not_configured",
            "cdp": "configured" if gateway.executor.configured else "not_configured",
            "x402": "configured" if gateway.gate.configured else "not_configured",
        }

        check = await gateway.executor.test_connection()
        services["cdp_connection"] = "connected" if check.ok else "failed"
        if not check.ok:
            services["cdp_error"] = check.error_type

        healthy = all(
            status in ("configured", "connected")
            for name, status in services.items()
            if name != "cdp_error"
        )
        return {
            "status": "healthy" if healthy else "degraded",
            "timestamp": _timestamp(),
            "services": services,
        }

    @router.get("/examples")
    async def api_examples():
        """Sample questions; never touches a backend."""
        return {
            "examples": EXAMPLES,
            "usage": {
                "endpoint": ENDPOINTS["query"].split(" ", 1)[1],
                "method": "POST",
                "headers": {"Content-Type": "application/json", PAYMENT_HEADER: "<base64 x402 payment>"},
                "body": {"text": "Your natural language question here"},
            },
        }

    app.include_router(router)

    @app.get("/")
    async def root():
        return {
            "name": "Natural Language Blockchain Query API",
            "version": VERSION,
            "description": (
                "A pay-per-query API that converts natural language questions into "
                "SQL queries against Base blockchain data"
            ),
            "endpoints": ENDPOINTS,
            "payment": {
                "enforced": gateway.gate.configured,
                "price": gateway.gate.price_usdc,
                "currency": "USDC",
                "network": gateway.gate.network,
            },
        }

    @app.exception_handler(404)
    async def not_found(request: Request, exc):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Endpoint not found",
                "availableEndpoints": {**ENDPOINTS, "root": "GET /"},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error", "server_error")

    return app


def setup_checks() -> list[tuple[str, bool, str]]:
    """Return ``(name, ok, message)`` for each piece of configuration the server needs."""
    checks = []

    def add(name: str, ok: bool, message: str) -> None:
        checks.append((name, ok, message))

    env_found = os.path.exists(".env") or os.path.exists(".env.local")
    add("Environment file", env_found, "found" if env_found else "no .env or .env.local in the working directory")

    add("CDP API key name", bool(config.CDP_API_KEY_NAME),
        "configured" if config.CDP_API_KEY_NAME else "CDP_API_KEY_NAME not set")
    add("CDP private key", bool(config.CDP_API_KEY_PRIVATE_KEY),
        "configured" if config.CDP_API_KEY_PRIVATE_KEY else "CDP_API_KEY_PRIVATE_KEY not set")

    provider = config.LLM_PROVIDER.lower()
    llm_keys = {"anthropic": ("ANTHROPIC_API_KEY", config.ANTHROPIC_API_KEY),
                "openai": ("OPENAI_API_KEY", config.OPENAI_API_KEY)}
    if provider in llm_keys:
        env_name, key = llm_keys[provider]
        add(f"LLM key ({provider})", bool(key), "configured" if key else f"{env_name} not set")
    else:
        add("LLM provider", False, f"unknown LLM_PROVIDER {config.LLM_PROVIDER!r}")

    add("x402 pay-to address", bool(config.X402_PAY_TO),
        "configured" if config.X402_PAY_TO else "X402_PAY_TO not set; payments will not be enforced")

    try:
        gate = PaymentGate(pay_to=config.X402_PAY_TO, price_usdc=config.X402_PRICE_USDC, network=config.NETWORK)
    except ConfigurationError as e:
        add("x402 price and network", False, e.detail or e.message)
    else:
        add("x402 price and network", True, f"{gate.price_usdc} USDC on {gate.network}")

    return checks


def print_setup_checks() -> bool:
    checks = setup_checks()
    print("Verifying Natural Language Blockchain Query API setup")
    for name, ok, message in checks:
        print(f"  {'✅' if ok else '❌'} {name}: {message}")
    passed = sum(1 for _, ok, _ in checks if ok)
    print(f"\n{passed}/{len(checks)} checks passed")
    return passed == len(checks)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--check", action="store_true", help="verify configuration and exit")
    args = parser.parse_args()

    configure_logging()
    if args.check:
        sys.exit(0 if print_setup_checks() else 1)

    app = create_app()

    print(f"Starting Blockchain Query API on http://{config.HOST}:{config.PORT}")
    print(f"  Network:   {config.NETWORK}")
    print(f"  Price:     {config.X402_PRICE_USDC} USDC per query")
    print(f"  Query:     http://localhost:{config.PORT}/api/query")
    print(f"  Health:    http://localhost:{config.PORT}/api/health")
    print(f"  Examples:  http://localhost:{config.PORT}/api/examples")

    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
