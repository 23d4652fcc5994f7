"""
=====================================================
Call Transfer Relay - Webhook Security
=====================================================
Twilio signature validation for telephony webhooks and an
origin check for the assistant's transfer tool.
"""

from typing import Optional

from fastapi import Request, HTTPException, status
from twilio.request_validator import RequestValidator
from loguru import logger

from config.settings import get_settings


def forwarded_base_url(request: Request) -> str:
    """Scheme and host the caller used, honoring reverse-proxy headers"""
    proto = request.headers.get("X-Forwarded-Proto", request.url.scheme)
    host = request.headers.get("X-Forwarded-Host", request.headers.get("Host", "localhost"))
    return f"{proto}://{host}"


class TwilioSignatureValidator:
    """
    Validates Twilio webhook request signatures.

    Twilio signs every webhook with the X-Twilio-Signature header,
    computed over the public URL and the POST parameters.
    """

    def __init__(self, auth_token: str):
        self.validator = RequestValidator(auth_token)

    @staticmethod
    def signed_url(request: Request, public_base_url: Optional[str] = None) -> str:
        """Rebuild the URL Twilio signed (the public one, not the container's)"""
        query = f"?{request.url.query}" if request.url.query else ""
        base = public_base_url.rstrip('/') if public_base_url else forwarded_base_url(request)
        return f"{base}{request.url.path}{query}"

    async def validate_request(self, request: Request, public_base_url: Optional[str] = None) -> bool:
        """
        Validate a Twilio webhook request.

        Args:
            request: FastAPI request object
            public_base_url: Public base URL when behind a reverse proxy / tunnel

        Returns:
            True if signature is valid, False otherwise
        """
        signature = request.headers.get("X-Twilio-Signature", "")
        if not signature:
            logger.warning("Twilio: Missing X-Twilio-Signature header")
            return False

        url = self.signed_url(request, public_base_url)

        if request.method == "POST":
            form_data = await request.form()
            params = dict(form_data)
        else:
            params = {}

        is_valid = self.validator.validate(url, params, signature)
        if not is_valid:
            logger.warning(f"Twilio: Invalid signature for {url}")
        return is_valid


# Dependency for Twilio webhook endpoints
async def validate_twilio_signature(request: Request) -> bool:
    """
    FastAPI dependency to validate Twilio webhook signatures.

    Usage:
        @app.post("/participant-status", dependencies=[Depends(validate_twilio_signature)])
    """
    settings = get_settings()

    if settings.environment == "development" and settings.skip_twilio_signature_validation:
        logger.debug("Twilio: Signature validation SKIPPED (development mode)")
        return True

    validator = TwilioSignatureValidator(settings.twilio_auth_token)
    if not await validator.validate_request(request, settings.public_base_url or None):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid Twilio signature"
        )
    return True


class UnauthorizedToolSource(Exception):
    """A transfer was triggered from outside the assistant provider"""

    message = "Unauthorized source"


def is_allowed_tool_origin(request: Request, allowed_origin: str) -> bool:
    """Check the Origin (or Referer) header mentions the assistant provider"""
    origin = request.headers.get("origin") or request.headers.get("referer") or ""
    return allowed_origin in origin


# Dependency for the assistant tool endpoint
async def verify_tool_origin(request: Request) -> bool:
    settings = get_settings()
    if not settings.enforce_tool_origin:
        return True

    if not is_allowed_tool_origin(request, settings.tool_allowed_origin):
        logger.warning("Unauthorized attempt to trigger /connect")
        raise UnauthorizedToolSource()
    return True
