"""
=====================================================
Call Transfer Relay - Call State Registry
=====================================================
Tracks the active customer leg and the department legs we dialed,
so asynchronous Twilio webhooks can be correlated back to them.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from loguru import logger


# Returned by get_active_customer_call() when no customer call was registered
NO_ACTIVE_CALL = ""

# One orchestrator serves one customer call at a time; a new inbound
# call replaces the previous one (last write wins).
MAX_ACTIVE_CUSTOMER_CALLS = 1


class CallRole(Enum):
    """Which party a leg belongs to"""
    CUSTOMER = "customer"
    DEPARTMENT = "department"


class CallStatus(Enum):
    """Twilio call statuses"""
    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CallStatus"]:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Department leg statuses that mean the human never picked up
FAILURE_STATUSES = frozenset({CallStatus.NO_ANSWER, CallStatus.BUSY, CallStatus.FAILED})

TERMINAL_STATUSES = FAILURE_STATUSES | {CallStatus.COMPLETED, CallStatus.CANCELED}


@dataclass
class CallLeg:
    """One participant's connection"""
    call_sid: str
    role: CallRole
    status: CallStatus = CallStatus.RINGING
    caller_number: Optional[str] = None
    destination: Optional[str] = None
    transfer_token: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


class CallStateRegistry:
    """
    Process-wide call state shared by all webhook handlers.

    Every read and write takes the same lock, so a reader never sees a
    half-replaced active call.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active_customer_sid: str = NO_ACTIVE_CALL
        self._legs: Dict[str, CallLeg] = {}

    def set_active_customer_call(self, call_sid: str, caller_number: Optional[str] = None) -> None:
        """
        Record a new inbound customer call, replacing the previous one

        Args:
            call_sid: Twilio CallSid of the customer leg
            caller_number: Caller's phone number
        """
        leg = CallLeg(
            call_sid=call_sid,
            role=CallRole.CUSTOMER,
            status=CallStatus.IN_PROGRESS,
            caller_number=caller_number
        )
        with self._lock:
            previous = self._active_customer_sid
            if previous and previous != call_sid:
                self._legs.pop(previous, None)
            self._active_customer_sid = call_sid
            self._legs[call_sid] = leg

        if previous and previous != call_sid:
            logger.info(f"Registry: Customer call {previous} superseded by {call_sid}")
        else:
            logger.info(f"Registry: Active customer call is {call_sid}")

    def get_active_customer_call(self) -> str:
        """Get the active customer CallSid, or NO_ACTIVE_CALL"""
        with self._lock:
            return self._active_customer_sid

    def register_department_leg(self, call_sid: str, transfer_token: str, destination: str) -> CallLeg:
        """Track an outbound department leg created for a transfer"""
        leg = CallLeg(
            call_sid=call_sid,
            role=CallRole.DEPARTMENT,
            status=CallStatus.QUEUED,
            destination=destination,
            transfer_token=transfer_token
        )
        with self._lock:
            self._legs[call_sid] = leg
        logger.debug(f"Registry: Tracking department leg {call_sid} for transfer {transfer_token}")
        return leg

    def record_status(self, call_sid: str, status: CallStatus) -> Optional[CallLeg]:
        """
        Apply a Twilio status event to a known leg

        Department legs are forgotten once they reach a terminal status.

        Returns:
            The updated leg, or None if the leg is not tracked
        """
        with self._lock:
            leg = self._legs.get(call_sid)
            if leg is None:
                return None
            leg.status = status
            if leg.role == CallRole.DEPARTMENT and status.is_terminal:
                del self._legs[call_sid]
        return leg

    def get_leg(self, call_sid: str) -> Optional[CallLeg]:
        with self._lock:
            return self._legs.get(call_sid)

    def clear(self) -> None:
        with self._lock:
            self._active_customer_sid = NO_ACTIVE_CALL
            self._legs.clear()
