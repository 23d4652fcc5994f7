"""
=====================================================
Call Transfer Relay - Vapi Assistant Connector
=====================================================

Asks Vapi for the TwiML that attaches an inbound caller to the
AI voice assistant. Uses httpx directly (no SDK needed).
"""

from typing import Optional
from loguru import logger
import httpx


class VapiAPIError(Exception):
    """Vapi did not return usable TwiML"""


class VapiConnector:
    """
    Connects inbound Twilio calls to a Vapi assistant.

    With phoneCallProviderBypassEnabled, Vapi does not take over the
    Twilio number; it hands back TwiML that we return to Twilio ourselves.
    """

    def __init__(
        self,
        api_key: str,
        assistant_id: str,
        phone_number_id: str,
        base_url: str = "https://api.vapi.ai/call",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.phone_number_id = phone_number_id
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    async def connect_caller(self, caller_number: str) -> str:
        """
        Create a Vapi call for this caller and return its TwiML

        Args:
            caller_number: Caller's phone number (E.164)

        Returns:
            TwiML document as string

        Raises:
            VapiAPIError: If Vapi fails or returns no TwiML
        """
        payload = {
            "phoneCallProviderBypassEnabled": True,
            "phoneNumberId": self.phone_number_id,
            "assistantId": self.assistant_id,
            "customer": {"number": caller_number},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise VapiAPIError(f"Vapi request failed: {e}") from e

        if not response.is_success:
            raise VapiAPIError(f"Vapi returned {response.status_code}: {response.text}")

        try:
            twiml = response.json().get("phoneCallProviderDetails", {}).get("twiml")
        except (ValueError, AttributeError) as e:
            raise VapiAPIError(f"Vapi returned an unreadable body: {e}") from e

        if not twiml:
            raise VapiAPIError("Vapi response has no phoneCallProviderDetails.twiml")

        logger.info(f"Vapi: Assistant call created for {caller_number}")
        return twiml


def create_vapi_connector(config: dict) -> VapiConnector:
    """
    Factory function to create the Vapi connector from config

    Args:
        config: Configuration dictionary

    Returns:
        Configured VapiConnector instance
    """
    return VapiConnector(
        api_key=config.get('vapi_private_api_key'),
        assistant_id=config.get('vapi_assistant_id'),
        phone_number_id=config.get('vapi_phone_number_id'),
        base_url=config.get('vapi_base_url', "https://api.vapi.ai/call"),
        timeout=config.get('http_timeout_seconds', 30.0)
    )
