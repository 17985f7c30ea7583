"""Demo FastAPI application with request deduplication.

Run with: python demo_app.py

Set REDIS_URL to share state between several workers; without it the demo
keeps everything in memory.

Then try:
    KEY=$(uuidgen)
    curl -i -X POST localhost:8000/api/payments -H "Idempotency-Key: $KEY" \
        -H "content-type: application/json" -d '{"amount": 100}'
    # Same command again: same body, Idempotency-Status: Repeated
"""

import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from request_dedup.adapters.asgi import ASGIIdempotencyMiddleware
from request_dedup.config import DedupConfig
from request_dedup.core.cleanup import start_cleanup_task, stop_cleanup_task
from request_dedup.observability.logging import configure_logging
from request_dedup.storage.memory import MemoryCacheStore, MemoryLockProvider
from request_dedup.storage.redis import RedisCacheStore, RedisLockProvider

configure_logging(level="INFO", json_output=False)

config = DedupConfig.from_env()

REDIS_URL = os.getenv("REDIS_URL")
if REDIS_URL:
    client = redis.from_url(REDIS_URL)
    cache = RedisCacheStore(client)
    locks = RedisLockProvider(client)
    purge_targets = []
else:
    cache = MemoryCacheStore()
    locks = MemoryLockProvider()
    purge_targets = [cache, locks]


@asynccontextmanager
async def lifespan(_app: FastAPI):
    task = await start_cleanup_task(purge_targets) if purge_targets else None
    yield
    if task is not None:
        await stop_cleanup_task(task)


app = FastAPI(
    title="Request Deduplication Demo",
    description="Demo API showing at-most-once execution per Idempotency-Key",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    ASGIIdempotencyMiddleware,
    cache=cache,
    locks=locks,
    config=config,
)


class PaymentRequest(BaseModel):
    amount: int
    currency: str = "USD"
    description: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    status: str
    amount: int
    currency: str
    created_at: str


class OrderRequest(BaseModel):
    product_id: str
    quantity: int
    customer_email: str


@app.get("/")
async def root():
    """Root endpoint - returns API info."""
    return {
        "name": "Request Deduplication Demo",
        "version": "0.1.0",
        "endpoints": {
            "POST /api/payments": "Create a payment, at most once per key",
            "POST /api/orders": "Create an order, at most once per key",
            "DELETE /api/orders/{order_id}": "Cancel an order, at most once per key",
            "GET /api/status": "Health check (not deduplicated)",
        },
        "usage": f"Send a UUID in the '{config.header_name}' header on "
        f"{', '.join(config.methods)} requests",
    }


@app.get("/api/status")
async def get_status():
    """Health check endpoint - GET bypasses deduplication."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@app.post("/api/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(payment: PaymentRequest):
    """Create a payment. Replays return the first payment instead of charging again."""
    time.sleep(0.1)

    if payment.amount <= 0:
        raise HTTPException(status_code=422, detail="Amount must be positive")

    return PaymentResponse(
        id=f"pay_{uuid.uuid4().hex[:12]}",
        status="success",
        amount=payment.amount,
        currency=payment.currency,
        created_at=datetime.now(UTC).isoformat(),
    )


@app.post("/api/orders", status_code=201)
async def create_order(order: OrderRequest):
    """Create an order."""
    time.sleep(0.1)

    return {
        "order_id": f"ord_{uuid.uuid4().hex[:12]}",
        "status": "confirmed",
        "product_id": order.product_id,
        "quantity": order.quantity,
        "total": round(order.quantity * 99.99, 2),
        "created_at": datetime.now(UTC).isoformat(),
    }


@app.delete("/api/orders/{order_id}")
async def cancel_order(order_id: str):
    """Cancel an order."""
    time.sleep(0.1)

    return {
        "order_id": order_id,
        "status": "cancelled",
        "cancelled_at": datetime.now(UTC).isoformat(),
    }


if __name__ == "__main__":
    print("=" * 60)
    print("Request Deduplication Demo Server")
    print("=" * 60)
    print("\nStarting server at http://localhost:8000")
    print("Backend:", "redis" if REDIS_URL else "memory")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
