"""
=====================================================
Call Transfer Relay - Transfer Orchestrator
=====================================================

Moves the active customer call from the AI assistant to a human department:

1. Resolve the department number
2. Park the customer in the conference room (hold)
3. Dial the department into the same room, with a status callback
4. If the department leg fails, redirect the customer to the fallback
   announcement

Customer leg lifecycle:
    connected-to-assistant -> on-hold-in-conference
        -> bridged-with-department | redirected-to-fallback -> terminated
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from loguru import logger

from config.settings import get_settings
from services.assistant.vapi_service import VapiAPIError, VapiConnector, create_vapi_connector
from services.telephony.twilio_service import TwilioAPIError, TwilioService, create_twilio_service
from services.telephony.twiml import (
    ConferenceBridgeController,
    FallbackAnnouncer,
    render_error_instruction,
)
from services.transfer.call_registry import (
    FAILURE_STATUSES,
    NO_ACTIVE_CALL,
    CallStateRegistry,
    CallStatus,
)
from services.transfer.directory import DepartmentDirectory
from services.transfer.errors import (
    CustomerUpdateFailed,
    DepartmentDialFailed,
    NoActiveCall,
    TransferError,
    UpstreamConnectorFailed,
)


# Webhook paths Twilio is pointed at (see api/main.py)
CONFERENCE_PATH = "/conference"
ANNOUNCE_PATH = "/announce"
STATUS_CALLBACK_PATH = "/participant-status"

DEFAULT_TOOL_CALL_ID = "transfer_1"


@dataclass
class TransferRequest:
    """A request from the assistant's transfer tool"""
    department: Optional[str]
    token: str = DEFAULT_TOOL_CALL_ID
    destination: Optional[str] = None

    @classmethod
    def from_tool_payload(cls, body: Dict[str, Any]) -> "TransferRequest":
        """
        Parse a Vapi tool webhook body

        Accepts the flat shape ({"department": ..., "toolCallList": [...]})
        and Vapi's wrapped shape ({"message": {"toolCallList": [...]}}),
        where the department sits in function.arguments.
        """
        body = body or {}
        message = body.get("message") if isinstance(body.get("message"), dict) else {}
        tool_calls = body.get("toolCallList") or message.get("toolCallList") or []
        if not isinstance(tool_calls, list):
            tool_calls = []
        tool_call = tool_calls[0] if tool_calls and isinstance(tool_calls[0], dict) else {}

        department = body.get("department")
        if not department:
            function = tool_call.get("function")
            arguments = (function.get("arguments") if isinstance(function, dict) else None) or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except ValueError:
                    arguments = {}
            if isinstance(arguments, dict):
                department = arguments.get("department")

        return cls(
            department=department if isinstance(department, str) else None,
            token=tool_call.get("id") or DEFAULT_TOOL_CALL_ID
        )


@dataclass
class TransferResult:
    """Outcome of a transfer, keyed by the tool call's token"""
    token: str
    success: bool
    message: str = ""
    error: Optional[str] = None
    department_call_sid: Optional[str] = None

    def to_tool_response(self) -> dict:
        """Format as a Vapi tool-call result"""
        if self.success:
            entry = {"toolCallId": self.token, "result": self.message}
        else:
            entry = {"toolCallId": self.token, "error": self.error}
        return {"results": [entry]}


class TransferOrchestrator:
    """
    Relays control between the customer, the AI assistant and a department.

    Holds no per-request state; everything shared lives in the
    CallStateRegistry.
    """

    def __init__(
        self,
        directory: DepartmentDirectory,
        registry: CallStateRegistry,
        twilio: TwilioService,
        bridge: ConferenceBridgeController,
        announcer: FallbackAnnouncer,
        assistant: Optional[VapiConnector] = None,
        public_base_url: str = "",
        announce_on_dial_failure: bool = True
    ):
        self.directory = directory
        self.registry = registry
        self.twilio = twilio
        self.bridge = bridge
        self.announcer = announcer
        self.assistant = assistant
        self.public_base_url = public_base_url.rstrip("/")
        self.announce_on_dial_failure = announce_on_dial_failure

    def _url(self, base_url: Optional[str], path: str) -> str:
        base = self.public_base_url or (base_url or "").rstrip("/")
        return f"{base}{path}"

    # =====================================================
    # INBOUND CALL
    # =====================================================

    async def handle_inbound_call(self, call_sid: str, caller_number: str) -> str:
        """
        Register the new customer call and connect it to the assistant

        Returns:
            TwiML for Twilio; a spoken error if the assistant is unreachable
        """
        self.registry.set_active_customer_call(call_sid, caller_number)

        try:
            return await self._connect_assistant(caller_number)
        except UpstreamConnectorFailed as e:
            logger.error(f"Transfer: Assistant connection failed for call {call_sid}: {e}")
            return render_error_instruction()

    async def _connect_assistant(self, caller_number: str) -> str:
        if self.assistant is None:
            raise UpstreamConnectorFailed("No assistant connector configured")
        try:
            return await self.assistant.connect_caller(caller_number)
        except VapiAPIError as e:
            raise UpstreamConnectorFailed(str(e)) from e

    # =====================================================
    # TRANSFER
    # =====================================================

    async def initiate_transfer(self, request: TransferRequest, base_url: Optional[str] = None) -> TransferResult:
        """
        Put the customer on hold in the conference and dial the department

        Args:
            request: Transfer request from the assistant's tool
            base_url: Public base URL of this server (when not configured)

        Returns:
            TransferResult keyed by request.token; never raises TransferError
        """
        label = (request.department or "").strip().lower() or self.directory.default_department
        request.destination = self.directory.resolve(request.department)
        logger.info(f"Transfer: Requested to {label} ({request.destination}), token={request.token}")

        try:
            customer_sid = await self._hold_customer(base_url)
            department_sid = await self._dial_department(request, customer_sid, base_url)
        except TransferError as e:
            logger.error(f"Transfer: {type(e).__name__} for token {request.token}, customer call {e.call_sid}: {e}")
            return TransferResult(token=request.token, success=False, error=e.reason)

        logger.info(f"Transfer: Customer {customer_sid} on hold, department leg {department_sid} dialing")
        return TransferResult(
            token=request.token,
            success=True,
            message=f"Transfer initiated to {label}.",
            department_call_sid=department_sid
        )

    async def _hold_customer(self, base_url: Optional[str]) -> str:
        customer_sid = self.registry.get_active_customer_call()
        if customer_sid == NO_ACTIVE_CALL:
            raise NoActiveCall("No customer call has been registered")

        try:
            await self.twilio.update_call(customer_sid, self._url(base_url, CONFERENCE_PATH))
        except TwilioAPIError as e:
            raise CustomerUpdateFailed(str(e), call_sid=customer_sid) from e
        return customer_sid

    async def _dial_department(self, request: TransferRequest, customer_sid: str, base_url: Optional[str]) -> Optional[str]:
        try:
            call = await self.twilio.create_call(
                to_number=request.destination,
                url=self._url(base_url, CONFERENCE_PATH),
                status_callback=self._url(base_url, STATUS_CALLBACK_PATH)
            )
        except TwilioAPIError as e:
            # The customer is already parked in the conference; don't leave them there
            if self.announce_on_dial_failure:
                await self._redirect_to_fallback(customer_sid, base_url)
            raise DepartmentDialFailed(str(e), call_sid=customer_sid) from e

        department_sid = call.get("sid")
        if department_sid:
            self.registry.register_department_leg(department_sid, request.token, request.destination)
        return department_sid

    # =====================================================
    # DEPARTMENT STATUS CALLBACK
    # =====================================================

    async def on_department_status_changed(
        self,
        status: Optional[str],
        call_sid: Optional[str] = None,
        base_url: Optional[str] = None
    ) -> bool:
        """
        React to a Twilio status event for a department leg

        On no-answer, busy or failed the active customer call is redirected
        to the fallback announcement. Redirect failures are logged only.

        Returns:
            True if a fallback redirect was issued successfully
        """
        parsed = CallStatus.parse(status)
        if parsed is None:
            logger.warning(f"Transfer: Unknown status '{status}' for leg {call_sid}")
            return False

        if call_sid and self.registry.record_status(call_sid, parsed) is None:
            logger.debug(f"Transfer: Status {parsed.value} for untracked leg {call_sid}")

        if parsed not in FAILURE_STATUSES:
            logger.info(f"Transfer: Department leg {call_sid} is {parsed.value}")
            return False

        customer_sid = self.registry.get_active_customer_call()
        if customer_sid == NO_ACTIVE_CALL:
            logger.warning(f"Transfer: Department leg {call_sid} {parsed.value}, but no customer call to redirect")
            return False

        logger.info(f"Transfer: Department leg {call_sid} {parsed.value}, playing fallback to {customer_sid}")
        return await self._redirect_to_fallback(customer_sid, base_url)

    async def _redirect_to_fallback(self, customer_sid: str, base_url: Optional[str]) -> bool:
        try:
            await self.twilio.update_call(customer_sid, self._url(base_url, ANNOUNCE_PATH))
            return True
        except TwilioAPIError as e:
            logger.error(f"Transfer: Failed to redirect customer call {customer_sid} to fallback: {e}")
            return False

    # =====================================================
    # TWIML
    # =====================================================

    def render_bridge_instruction(self) -> str:
        return self.bridge.render_bridge_instruction()

    def render_fallback_instruction(self) -> str:
        return self.announcer.render_fallback_instruction()

    async def close(self) -> None:
        await self.twilio.close()


# Global instance
_orchestrator: Optional[TransferOrchestrator] = None


def create_orchestrator(settings=None) -> TransferOrchestrator:
    """Build an orchestrator wired to Twilio and Vapi from settings"""
    settings = settings or get_settings()
    config = settings.model_dump()

    return TransferOrchestrator(
        directory=DepartmentDirectory.from_settings(settings),
        registry=CallStateRegistry(),
        twilio=create_twilio_service(config),
        bridge=ConferenceBridgeController(settings.conference_room_name),
        announcer=FallbackAnnouncer(settings.fallback_message),
        assistant=create_vapi_connector(config),
        public_base_url=settings.public_base_url,
        announce_on_dial_failure=settings.announce_on_dial_failure
    )


def get_orchestrator() -> TransferOrchestrator:
    """Get global orchestrator instance"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_orchestrator()
    return _orchestrator


async def close_orchestrator() -> None:
    """Close the global orchestrator, if one was ever created"""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None
