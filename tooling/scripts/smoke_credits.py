#!/usr/bin/env python3
"""Smoke test for the webhook → ledger → balance flow.

Usage (HTTP):
    python tooling/scripts/smoke_credits.py --base-url http://localhost:8000 \
        --webhook-secret <STRIPE_WEBHOOK_SECRET> --admin-key <ADMIN_API_KEY>

Usage (in-process, no network sockets required):
    python tooling/scripts/smoke_credits.py --in-process

The script checks:
1. API health (`/healthz`)
2. Signed `checkout.session.completed` delivery (`POST /api/v1/webhooks/stripe`)
3. Redelivery of the same event is acknowledged as a duplicate
4. Ledger balance (`/api/v1/credits/balance`) equals the credited package
5. Credit observability snapshot (`/api/v1/observability/credits`)
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import hmac
import json
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Any

import httpx
from httpx import ASGITransport, Response

SMOKE_WEBHOOK_SECRET = "whsec_smoke"
SMOKE_ADMIN_KEY = "credit-ledger-smoke-key"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Credit ledger smoke test")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the FastAPI service (ignored with --in-process)",
    )
    parser.add_argument("--webhook-secret", help="Stripe webhook signing secret used by the service.")
    parser.add_argument("--admin-key", help="Value for X-API-Key on admin/observability endpoints.")
    parser.add_argument(
        "--amount-cents",
        type=int,
        default=15000,
        help="amount_total of the simulated checkout session",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Request timeout in seconds",
    )
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Run requests directly against the ASGI app without binding network sockets.",
    )
    return parser.parse_args()


def _sign(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _checkout_event(session_id: str, email: str, amount_cents: int) -> str:
    return json.dumps(
        {
            "id": f"evt_{session_id}",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "amount_total": amount_cents,
                    "currency": "usd",
                    "customer_details": {"email": email},
                    "metadata": {"smoke_test": "true"},
                }
            },
        }
    )


async def _get_json(client: httpx.AsyncClient, path: str, **kwargs: Any) -> dict[str, Any]:
    response: Response = await client.get(path, **kwargs)
    response.raise_for_status()
    return response.json()


async def _deliver(client: httpx.AsyncClient, payload: str, secret: str) -> dict[str, Any]:
    response: Response = await client.post(
        "/api/v1/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, secret), "Content-Type": "application/json"},
    )
    response.raise_for_status()
    return response.json()


async def _run_checks(
    client: httpx.AsyncClient,
    webhook_secret: str,
    admin_key: str,
    amount_cents: int,
) -> dict[str, Any]:
    health = await _get_json(client, "/healthz")
    if health.get("status") != "ok":
        raise RuntimeError(f"Unexpected health response: {health}")

    smoke_id = uuid.uuid4().hex[:12]
    email = f"smoke+{smoke_id}@example.com"
    payload = _checkout_event(f"cs_smoke_{smoke_id}", email, amount_cents)

    credited = await _deliver(client, payload, webhook_secret)
    credits_added = int(credited.get("credits_added") or 0)
    if credits_added <= 0:
        raise RuntimeError(f"Webhook did not credit the ledger: {credited}")

    replay = await _deliver(client, payload, webhook_secret)
    if not replay.get("duplicate"):
        raise RuntimeError(f"Redelivery was not treated as a duplicate: {replay}")

    balance = await _get_json(client, "/api/v1/credits/balance", params={"email": email})
    if balance.get("balance") != credits_added:
        raise RuntimeError(f"Balance mismatch: expected {credits_added}, got {balance}")

    observability = await _get_json(
        client,
        "/api/v1/observability/credits",
        headers={"X-API-Key": admin_key},
    )
    webhook_totals = observability.get("webhooks", {}).get("totals", {})
    if "credited" not in webhook_totals:
        raise RuntimeError(f"Credit observability response missing webhook totals: {observability}")

    return {"email": email, "credits": credits_added, "package": credited.get("package")}


async def run_http(base_url: str, timeout: float, webhook_secret: str, admin_key: str, amount_cents: int) -> dict[str, Any]:
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        return await _run_checks(client, webhook_secret, admin_key, amount_cents)


async def run_in_process(timeout: float, amount_cents: int) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    # Settings are read at import time.
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./credit_ledger_smoke.db")
    os.environ["DB_AUTO_CREATE"] = "true"
    os.environ["STRIPE_WEBHOOK_SECRET"] = SMOKE_WEBHOOK_SECRET
    os.environ["ADMIN_API_KEY"] = SMOKE_ADMIN_KEY

    from credit_ledger_api.app import create_app  # type: ignore import-position

    app = create_app()
    lifespan = app.router.lifespan_context(app)
    await lifespan.__aenter__()
    try:
        transport = ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver", timeout=timeout) as client:
            return await _run_checks(client, SMOKE_WEBHOOK_SECRET, SMOKE_ADMIN_KEY, amount_cents)
    finally:
        await lifespan.__aexit__(None, None, None)


def _required(value: str | None, flag: str, env_name: str) -> str:
    if value:
        return value
    env_value = os.environ.get(env_name)
    if env_value:
        return env_value
    raise SystemExit(f"Missing {flag} or {env_name} environment variable for HTTP smoke test.")


def main() -> int:
    args = parse_args()

    if args.in_process:
        result = asyncio.run(run_in_process(args.timeout, args.amount_cents))
    else:
        webhook_secret = _required(args.webhook_secret, "--webhook-secret", "STRIPE_WEBHOOK_SECRET")
        admin_key = _required(args.admin_key, "--admin-key", "ADMIN_API_KEY")
        result = asyncio.run(run_http(args.base_url, args.timeout, webhook_secret, admin_key, args.amount_cents))

    print(f"Credit smoke test passed ✅ {result['credits']} credits ({result['package']}) for {result['email']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
