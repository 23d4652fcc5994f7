"""Security module for Call Transfer Relay"""

from .middleware import (
    TwilioSignatureValidator,
    UnauthorizedToolSource,
    forwarded_base_url,
    is_allowed_tool_origin,
    validate_twilio_signature,
    verify_tool_origin,
)

__all__ = [
    "TwilioSignatureValidator",
    "UnauthorizedToolSource",
    "forwarded_base_url",
    "is_allowed_tool_origin",
    "validate_twilio_signature",
    "verify_tool_origin",
]
