"""HTTP route definitions for the service."""

from __future__ import annotations

import json
import logging
from typing import Any, Union

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from app.schemas import (
    DataSummary,
    EmailSystemStatus,
    IngestAck,
    InvalidPayload,
    ReadingIn,
    ReadingOut,
)
from services.monitor import DrainageMonitor, build_default_monitor

logger = logging.getLogger(__name__)

INVALID_PAYLOAD_MESSAGE = 'Invalid payload. Expect: { distance: number, motor: "ON"|"OFF" }'

router = APIRouter()


def get_monitor() -> DrainageMonitor:
    return build_default_monitor()


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")


@router.get(
    "/",
    summary="Liveness message.",
    response_class=PlainTextResponse,
    status_code=status.HTTP_200_OK,
)
async def root() -> str:
    return "Smart Drainage backend is running"


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/data",
    response_model=DataSummary,
    summary="Number of stored readings and the most recent one.",
)
def get_data(monitor: DrainageMonitor = Depends(get_monitor)) -> DataSummary:
    count, latest = monitor.summary()
    return DataSummary(
        count=count,
        latest=ReadingOut.from_reading(latest) if latest is not None else None,
    )


@router.post(
    "/data",
    response_model=IngestAck,
    summary="Ingest a sensor reading and alert on critical water level.",
    responses={status.HTTP_400_BAD_REQUEST: {"model": InvalidPayload}},
)
async def post_data(
    request: Request,
    monitor: DrainageMonitor = Depends(get_monitor),
) -> Union[IngestAck, JSONResponse]:
    payload = await _read_json(request)
    try:
        reading_in = ReadingIn.model_validate(payload)
    except ValidationError as exc:
        logger.info(
            "Rejected reading payload", extra={"reason": f"{exc.error_count()} errors"}
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=InvalidPayload(error=INVALID_PAYLOAD_MESSAGE, got=payload).model_dump(),
        )

    # Delivery may block on SMTP; keep it off the event loop.
    await run_in_threadpool(monitor.record_reading, reading_in.distance, reading_in.motor)
    return IngestAck()


@router.get(
    "/email-test",
    response_model=EmailSystemStatus,
    response_model_exclude_none=True,
    summary="Verify the alert email transport.",
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": EmailSystemStatus}},
)
def email_test(
    monitor: DrainageMonitor = Depends(get_monitor),
) -> Union[EmailSystemStatus, JSONResponse]:
    result = monitor.check_notifier()
    if not result.ok:
        body = EmailSystemStatus(emailSystem="ERROR", message=result.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(exclude_none=True),
        )
    return EmailSystemStatus(emailSystem="OK", config=result.config)
