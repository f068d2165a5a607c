"""Configuration for the natural-language blockchain query gateway."""

import os
from dotenv import load_dotenv

load_dotenv()

# --- LLM (natural language -> SQL) ---
LLM_PROVIDER = os.environ.get("LLM_PROVIDER", "anthropic")  # anthropic | openai
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
LLM_MODEL = os.environ.get("LLM_MODEL", "")
LLM_TIMEOUT_S = float(os.environ.get("LLM_TIMEOUT_S", "30"))
LLM_MAX_TOKENS = int(os.environ.get("LLM_MAX_TOKENS", "500"))

# --- CDP SQL API (read-only blockchain data) ---
CDP_API_KEY_NAME = os.environ.get("CDP_API_KEY_NAME", os.environ.get("CDP_API_KEY_ID", ""))
CDP_API_KEY_PRIVATE_KEY = os.environ.get(
    "CDP_API_KEY_PRIVATE_KEY",
    os.environ.get("CDP_API_KEY_SECRET", ""),
)
CDP_API_BASE_URL = os.environ.get("CDP_API_BASE_URL", "https://api.cdp.coinbase.com/platform")

# Timeout for a single query run (seconds)
QUERY_TIMEOUT_S = float(os.environ.get("QUERY_TIMEOUT_S", "30"))

# --- x402 payments ---
# Empty pay-to address leaves the gateway open (developer mode)
X402_PAY_TO = os.environ.get("X402_PAY_TO", os.environ.get("X402_WALLET_ADDRESS", ""))
X402_PRICE_USDC = os.environ.get("X402_PRICE_USDC", "0.01")
NETWORK = os.environ.get("NETWORK", "base-mainnet")
X402_FACILITATOR_URL = os.environ.get("X402_FACILITATOR_URL", "https://x402.org/facilitator")

# --- Request limits ---
MAX_QUERY_LENGTH = int(os.environ.get("MAX_QUERY_LENGTH", "1000"))
MAX_BODY_BYTES = int(os.environ.get("MAX_BODY_BYTES", str(10 * 1024 * 1024)))

# --- Server ---
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
