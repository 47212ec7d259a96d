"""
Cinda Profile Core API

FastAPI wrapper exposing signal extraction and analyze-request routing.
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cinda import __version__
from cinda.errors import InvalidRoutingState
from cinda.extraction.signal_extractor import SignalExtractor
from cinda.models.profile import ProfileAggregate
from cinda.routing.mode_router import detect_mode
from cinda.routing.payload_builder import PayloadBuilder
from cinda.utils.constants import MODE_DISCOVERY
from cinda.utils.settings import configure_logging

configure_logging()

app = FastAPI(
    title="Cinda Profile Core",
    description="Extract runner signals from free text and build analyze requests from stored profile data",
    version=__version__,
)

extractor = SignalExtractor()
builder = PayloadBuilder()


class ExtractRequest(BaseModel):
    text: str
    profile: Optional[Dict[str, Any]] = None


class RouteRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    profile: Optional[Dict[str, Any]] = None
    shoes: List[Any] = Field(default_factory=list)
    shoe_requests: Optional[List[Any]] = None
    gap: Optional[Dict[str, Any]] = None
    chat_context: Optional[Dict[str, Any]] = None


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "cinda-profile-core",
        "version": __version__,
    }


@app.get("/health")
async def health():
    """Alias for health check."""
    return await health_check()


@app.post("/extract")
async def extract(request: ExtractRequest):
    """
    Extract signals from one message against a stored profile.

    Returns the proposal and the profile with the proposal applied.
    """
    aggregate = ProfileAggregate.from_stored(profile=request.profile)
    proposal = extractor.extract(request.text, aggregate.snapshot())
    applied = aggregate.apply_proposal(proposal)

    return JSONResponse(content={
        "proposal": proposal.to_dict(),
        "applied": applied,
        "profile": aggregate.to_stored_profile(),
    })


@app.post("/route")
async def route(request: RouteRequest):
    """
    Pick the analysis mode for stored artifacts and build the request.

    409 when there are neither shoe requests nor a gap.
    """
    try:
        mode = detect_mode(request.shoe_requests, request.gap)
    except InvalidRoutingState as e:
        raise HTTPException(
            status_code=409,
            detail={"error": str(e), "restartStep": e.restart_step},
        )

    if mode == MODE_DISCOVERY:
        payload = builder.build_discovery(
            request.profile, request.shoes, request.shoe_requests, request.chat_context
        )
    else:
        payload = builder.build_analysis(
            request.profile, request.shoes, gap=request.gap, chat_context=request.chat_context
        )

    return JSONResponse(content={"mode": mode, "payload": payload.to_json_dict()})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
