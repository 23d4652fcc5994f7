"""
=====================================================
Call Transfer Relay - Main FastAPI Application
=====================================================
"""

import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from config.settings import get_settings
from services.security import (
    UnauthorizedToolSource,
    forwarded_base_url,
    validate_twilio_signature,
    verify_tool_origin,
)
from services.transfer.orchestrator import (
    TransferOrchestrator,
    TransferRequest,
    close_orchestrator,
    get_orchestrator,
)


# Get settings
settings = get_settings()

# Configure logger
logger.remove()  # Remove default handler
logger.add(
    settings.log_file,
    rotation="50 MB",
    level=settings.log_level,
    backtrace=True,
    diagnose=settings.debug
)
logger.add(sys.stderr, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info(f"{settings.app_name} starting up...")
    yield
    await close_orchestrator()
    logger.info(f"{settings.app_name} shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Relays customer calls between an AI voice assistant and human departments",
    version=settings.app_version,
    lifespan=lifespan
)


def twiml_response(twiml: str, status_code: int = 200) -> Response:
    return Response(content=twiml, media_type="text/xml", status_code=status_code)


# =====================================================
# HEALTH CHECK
# =====================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "call-transfer-relay",
        "version": settings.app_version,
        "environment": settings.environment
    }


# =====================================================
# TWILIO WEBHOOKS (TwiML)
# =====================================================

@app.post("/inbound_call", dependencies=[Depends(validate_twilio_signature)])
async def inbound_call(request: Request, orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """
    Handle incoming call from Twilio
    Returns the assistant's TwiML (or a spoken error)
    """
    form = await request.form()
    call_sid = form.get("CallSid", "")
    caller_number = form.get("Caller", "")

    logger.info(f"Inbound call {call_sid} from {caller_number}")
    twiml = await orchestrator.handle_inbound_call(call_sid, caller_number)
    return twiml_response(twiml)


@app.post("/conference", dependencies=[Depends(validate_twilio_signature)])
async def conference(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """TwiML that merges the calling leg into the conference room"""
    return twiml_response(orchestrator.render_bridge_instruction())


@app.post("/announce", dependencies=[Depends(validate_twilio_signature)])
async def announce(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """TwiML fallback message for the customer"""
    return twiml_response(orchestrator.render_fallback_instruction())


@app.post("/participant-status", dependencies=[Depends(validate_twilio_signature)])
async def participant_status(request: Request, orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """
    Status callback for the department leg.
    Twilio only needs an acknowledgment, so this always answers 200.
    """
    try:
        form = await request.form()
        await orchestrator.on_department_status_changed(
            form.get("CallStatus"),
            call_sid=form.get("CallSid"),
            base_url=forwarded_base_url(request)
        )
    except Exception as e:
        logger.exception(f"Status callback handling failed: {e}")

    return PlainTextResponse("OK")


# =====================================================
# ASSISTANT TOOL WEBHOOK
# =====================================================

@app.post("/connect", dependencies=[Depends(verify_tool_origin)])
async def connect(request: Request, orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """
    Transfer tool invoked by the Vapi assistant.
    Responds with a tool result keyed by the tool call id.
    """
    try:
        body = await request.json()
    except ValueError:
        body = {}

    transfer_request = TransferRequest.from_tool_payload(body if isinstance(body, dict) else {})
    result = await orchestrator.initiate_transfer(transfer_request, base_url=forwarded_base_url(request))

    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.to_tool_response()
    )


# =====================================================
# ERROR HANDLERS
# =====================================================

@app.exception_handler(UnauthorizedToolSource)
async def unauthorized_tool_source_handler(request: Request, exc: UnauthorizedToolSource):
    return JSONResponse(status_code=403, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


# =====================================================
# MAIN ENTRY POINT (for development)
# =====================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
