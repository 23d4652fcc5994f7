"""
=====================================================
Call Transfer Relay - Transfer Errors
=====================================================
"""

from typing import Optional


class TransferError(Exception):
    """
    Base class for failures recovered at the orchestrator boundary.

    `reason` is the short text returned to the invoking tool.
    """

    reason = "Transfer failure."

    def __init__(self, message: str = "", call_sid: Optional[str] = None):
        super().__init__(message or self.reason)
        self.call_sid = call_sid


class NoActiveCall(TransferError):
    """No customer call is tracked when a transfer is requested"""

    reason = "Transfer failure: no active customer call."


class CustomerUpdateFailed(TransferError):
    """Twilio rejected redirecting the customer into the conference"""

    reason = "Transfer failure: could not place the customer on hold."


class DepartmentDialFailed(TransferError):
    """Twilio rejected the outbound call to the department"""

    reason = "Transfer failure: could not dial the department."


class UpstreamConnectorFailed(TransferError):
    """The AI assistant connector failed for an inbound call"""

    reason = "Connection error."
