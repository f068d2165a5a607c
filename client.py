"""
Simple Python client for the Natural Language Blockchain Query API.

Usage:
    from client import BlockchainQueryClient

    q = BlockchainQueryClient()
    result = q.query("How many transactions happened in the last 24 hours?")
    print(result["generatedQuery"])
    print(result["result"]["rows"])

A 402 response raises GatewayClientError; its ``body["accepts"]`` lists the
payment requirements to sign and resend as ``payment_header``.
"""

import json
import os
import urllib.error
import urllib.request


class GatewayClientError(RuntimeError):
    def __init__(self, status: int, body):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")


class BlockchainQueryClient:
    """Client for the query gateway."""

    def __init__(self, base_url: str | None = None, payment_header: str | None = None, timeout: float = 120):
        self.base_url = (base_url or os.environ.get("QUERY_API_URL", "http://localhost:3000")).rstrip("/")
        self.payment_header = payment_header or os.environ.get("QUERY_API_PAYMENT", "")
        self.timeout = timeout

    def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        data = json.dumps(body).encode() if body is not None else None
        headers = {"Content-Type": "application/json"}
        if self.payment_header:
            headers["X-PAYMENT"] = self.payment_header

        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read())
        except urllib.error.HTTPError as e:
            raw = e.read().decode()
            try:
                error_body = json.loads(raw)
            except ValueError:
                error_body = raw
            raise GatewayClientError(e.code, error_body) from e

    def query(self, text: str) -> dict:
        """Send a natural language question, get SQL + rows back."""
        return self._request("POST", "/api/query", {"text": text})

    def health(self) -> dict:
        """Check service health."""
        return self._request("GET", "/api/health")

    def examples(self) -> dict:
        """List sample questions."""
        return self._request("GET", "/api/examples")

    def describe(self) -> dict:
        return self._request("GET", "/")


if __name__ == "__main__":
    import sys

    q = BlockchainQueryClient()

    if len(sys.argv) > 1:
        question = " ".join(sys.argv[1:])
    else:
        question = "How many transactions happened in the last 24 hours?"

    print(f"Question: {question}\n")
    try:
        result = q.query(question)
        meta = result["metadata"]
        print(f"SQL: {result['generatedQuery']}\n")
        print(f"Results ({result['result']['rowCount']} rows, {meta['totalExecutionTimeMs']}ms):")
        for row in result["result"]["rows"]:
            print(f"  {row}")
    except GatewayClientError as e:
        if e.status == 402:
            print("Payment required. Accepted payments:")
            for option in e.body.get("accepts", []):
                print(f"  {option['maxAmountRequired']} of {option['asset']} on {option['network']} to {option['payTo']}")
        else:
            print(f"Error: {e}")
