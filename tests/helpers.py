"""Test doubles and request builders shared by the unit and scenario tests."""

import asyncio
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from request_dedup.adapters.asgi import ASGIIdempotencyMiddleware
from request_dedup.core.envelope import HttpResponse
from request_dedup.models import Request
from request_dedup.observability.alerts import AlertEvent, EventType
from request_dedup.observability.telemetry import Segment


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CollectingAlertChannel:
    """Alert channel that keeps every delivered event."""

    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    async def emit(self, event: AlertEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[AlertEvent]:
        return [event for event in self.events if event.event_type == event_type]


class FailingAlertChannel:
    """Alert channel whose delivery always fails, counting attempts."""

    def __init__(self) -> None:
        self.attempts = 0

    async def emit(self, event: AlertEvent) -> None:
        self.attempts += 1
        raise ConnectionError("alert webhook unreachable")


class RecordingTelemetrySink:
    """Telemetry sink that records every call."""

    def __init__(self) -> None:
        self.metrics: list[str] = []
        self.timings: dict[str, list[float]] = {}
        self.sizes: dict[str, list[int]] = {}
        self.segments: list[Segment] = []
        self.open_segments = 0

    def start_segment(self, name: str, description: str | None = None) -> Segment | None:
        self.open_segments += 1
        segment = Segment(name, description)
        self.segments.append(segment)
        return segment

    def add_segment_context(self, segment: Segment | None, key: str, value: Any) -> None:
        if segment is not None:
            segment.context[key] = value

    def end_segment(self, segment: Segment | None) -> None:
        self.open_segments -= 1

    def record_metric(self, name: str, value: int = 1) -> None:
        self.metrics.extend([name] * value)

    def record_timing(self, name: str, milliseconds: float) -> None:
        self.timings.setdefault(name, []).append(milliseconds)

    def record_size(self, name: str, num_bytes: int) -> None:
        self.sizes.setdefault(name, []).append(num_bytes)


def make_request(
    key: str | None = None,
    method: str = "POST",
    path: str = "/api/payments",
    body: bytes = b'{"amount": 100}',
    header_name: str = "Idempotency-Key",
    **kwargs: Any,
) -> Request:
    headers = {"content-type": "application/json"}
    if key is not None:
        headers[header_name] = key
    return Request(method=method, path=path, headers=headers, body=body, **kwargs)


def json_response(status: int = 201, body: bytes = b'{"id": "pay_1"}') -> HttpResponse:
    return HttpResponse(status=status, headers={"content-type": "application/json"}, body=body)


class CountingHandler:
    """Handler returning a fixed response and counting its calls."""

    def __init__(
        self,
        response: HttpResponse | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.response = response or json_response()
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self, request: Request) -> HttpResponse:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return HttpResponse(self.response.status, dict(self.response.headers), self.response.body)


class PaymentRequest(BaseModel):
    amount: int
    currency: str = "USD"


def build_app(
    cache: Any,
    locks: Any,
    config: Any = None,
    alert_channel: Any = None,
    telemetry: Any = None,
) -> FastAPI:
    """FastAPI application with deduplicated payment and order endpoints.

    ``app.state.calls`` counts executions per endpoint name.
    """
    app = FastAPI()
    app.state.calls = {}
    app.add_middleware(
        ASGIIdempotencyMiddleware,
        cache=cache,
        locks=locks,
        config=config,
        alert_channel=alert_channel,
        telemetry=telemetry,
    )

    def count(name: str) -> int:
        app.state.calls[name] = app.state.calls.get(name, 0) + 1
        return app.state.calls[name]

    @app.post("/api/payments", status_code=201)
    async def create_payment(payment: PaymentRequest):
        number = count("payments")
        return {"id": f"pay_{number}", "amount": payment.amount, "currency": payment.currency}

    @app.post("/api/slow-payments", status_code=201)
    async def create_slow_payment(payment: PaymentRequest):
        number = count("slow-payments")
        await asyncio.sleep(0.2)
        return {"id": f"pay_{number}", "amount": payment.amount}

    @app.post("/api/declined-payments")
    async def decline_payment(payment: PaymentRequest):
        count("declined-payments")
        raise HTTPException(status_code=402, detail="Payment declined")

    @app.post("/api/broken-payments")
    async def broken_payment(payment: PaymentRequest):
        count("broken-payments")
        raise RuntimeError("payment gateway unreachable")

    @app.post("/api/reports")
    async def create_report():
        count("reports")
        return JSONResponse({"rows": ["x" * 100] * 20})

    @app.put("/api/orders/{order_id}")
    async def update_order(order_id: str):
        count("orders")
        return {"id": order_id, "status": "updated"}

    @app.delete("/api/orders/{order_id}")
    async def cancel_order(order_id: str):
        count("orders")
        return {"id": order_id, "status": "cancelled"}

    @app.get("/api/status")
    async def status():
        count("status")
        return {"status": "ok"}

    return app
