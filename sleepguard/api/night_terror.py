"""
Night terror endpoints: session lifecycle, wearable sample ingestion, live event stream.

Routes (/night-terror):
  POST /start          - Start monitoring on a fresh sample channel (no-op if running)
  POST /stop           - Stop monitoring; releases the channel and the speaker
  POST /samples        - Wearable pushes one biometric sample (409 if not running)
  GET  /status         - Current phase, cooldown and baseline fill
  GET  /events/stream  - SSE stream of DetectedDistress / CuePlayed / Recovered
"""

import asyncio
import json
import logging
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from .models import (
    BioSampleRequest,
    SampleAcceptedResponse,
    StartResponse,
    StopResponse,
    ProtocolStatusResponse,
)
from ..core.settings import settings
from ..services.bio_stream import QueueBioStream, BioStreamClosed
from ..services.night_terror_protocol import NightTerrorProtocol

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/night-terror", tags=["night-terror"])


def _protocol(request: Request) -> NightTerrorProtocol:
    return request.app.state.night_terror


# Used by: bedside app (user goes to bed)
@router.post("/start", response_model=StartResponse)
async def start_monitoring(request: Request):
    protocol = _protocol(request)
    if protocol.is_running:
        logger.info(f"Start requested but session {protocol.session_id} is already running")
        return StartResponse(
            session_id=protocol.session_id,
            already_running=True,
            message="Night terror monitoring already running",
        )

    bio_stream = QueueBioStream()
    request.app.state.bio_stream = bio_stream
    await protocol.start(bio_stream, request.app.state.calming_audio)

    return StartResponse(
        session_id=protocol.session_id,
        already_running=False,
        message="Night terror monitoring started",
    )


# Used by: bedside app (user wakes up / ends the night)
@router.post("/stop", response_model=StopResponse)
async def stop_monitoring(request: Request):
    protocol = _protocol(request)
    was_running = protocol.is_running
    await protocol.stop()

    bio_stream = getattr(request.app.state, "bio_stream", None)
    if bio_stream is not None:
        bio_stream.close()
        request.app.state.bio_stream = None

    return StopResponse(
        stopped=was_running,
        message="Night terror monitoring stopped" if was_running else "Night terror monitoring was not running",
    )


# Used by: wearable bridge (one sample per reading)
@router.post("/samples", response_model=SampleAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def push_sample(body: BioSampleRequest, request: Request):
    protocol = _protocol(request)
    bio_stream = getattr(request.app.state, "bio_stream", None)

    if not protocol.is_running or bio_stream is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Night terror monitoring is not running",
        )

    try:
        bio_stream.push(body.to_sample())
    except BioStreamClosed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Sample stream is closed",
        )

    return SampleAcceptedResponse(
        accepted=True,
        stage=body.stage,
        message=f"Sample at {body.at.isoformat()} queued",
    )


# Used by: bedside app (status card)
@router.get("/status", response_model=ProtocolStatusResponse)
async def get_status(request: Request):
    return ProtocolStatusResponse(**_protocol(request).status())


# Used by: bedside app (real-time protocol events, useNightTerrorEvents hook)
@router.get("/events/stream")
async def events_stream(request: Request):
    subscription = _protocol(request).events()

    async def event_generator():
        try:
            yield "event: connected\ndata: {}\n\n"

            while True:
                try:
                    event = await subscription.get(timeout=float(settings.SSE_KEEPALIVE_SECONDS))
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event is None:
                    break
                yield f"event: {event.type}\ndata: {json.dumps(event.to_dict())}\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            subscription.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # disable nginx buffering
        }
    )
