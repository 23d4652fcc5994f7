"""
=====================================================
Call Transfer Relay - Twilio REST Service
=====================================================
Redirects live calls and places outbound calls through the Twilio REST API
"""

from typing import Optional
from loguru import logger
import httpx


class TwilioAPIError(Exception):
    """Twilio rejected a request or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TwilioService:
    """
    Twilio service for call control

    Handles Twilio REST API calls for redirecting and creating calls.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        phone_number: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Twilio service

        Args:
            account_sid: Twilio Account SID
            auth_token: Twilio Auth Token
            phone_number: Number outbound calls are placed from
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.phone_number = phone_number
        self.timeout = timeout
        self._transport = transport
        self._base_url = f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}"
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
                transport=self._transport
            )
        return self._client

    async def _post(self, url: str, data: dict) -> dict:
        client = await self._get_client()

        try:
            response = await client.post(url, data=data)
        except httpx.HTTPError as e:
            raise TwilioAPIError(f"Twilio request failed: {e}") from e

        if not response.is_success:
            # Twilio error bodies look like {"code": 20404, "message": "..."}
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise TwilioAPIError(
                f"Twilio returned {response.status_code}: {detail}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise TwilioAPIError(f"Twilio returned an unreadable body: {e}", status_code=response.status_code) from e

    async def update_call(self, call_sid: str, url: str, method: str = "POST") -> dict:
        """
        Redirect a live call to new TwiML

        Args:
            call_sid: Call SID to redirect
            url: URL serving the TwiML the call should run next
            method: HTTP method Twilio uses to fetch the URL

        Returns:
            Twilio call resource

        Raises:
            TwilioAPIError: If Twilio rejects the update
        """
        if not call_sid:
            raise TwilioAPIError("No call SID given")

        result = await self._post(
            f"{self._base_url}/Calls/{call_sid}.json",
            {"Url": url, "Method": method}
        )
        logger.info(f"Twilio: Redirected call {call_sid} to {url}")
        return result

    async def create_call(
        self,
        to_number: str,
        url: str,
        status_callback: Optional[str] = None,
        method: str = "POST"
    ) -> dict:
        """
        Place an outbound call

        Args:
            to_number: Number to dial
            url: URL serving the TwiML run when the call is answered
            status_callback: URL Twilio posts status changes to
            method: HTTP method for both URLs

        Returns:
            Twilio call resource (includes the new call's "sid")

        Raises:
            TwilioAPIError: If Twilio rejects the call
        """
        data = {
            "To": to_number,
            "From": self.phone_number,
            "Url": url,
            "Method": method,
        }
        if status_callback:
            data["StatusCallback"] = status_callback
            data["StatusCallbackMethod"] = method

        result = await self._post(f"{self._base_url}/Calls.json", data)
        logger.info(f"Twilio: Created call {result.get('sid')} to {to_number}")
        return result

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Factory function
def create_twilio_service(config: dict) -> TwilioService:
    """
    Factory function to create Twilio service from config

    Args:
        config: Configuration dictionary

    Returns:
        Configured TwilioService instance
    """
    return TwilioService(
        account_sid=config.get('twilio_account_sid'),
        auth_token=config.get('twilio_auth_token'),
        phone_number=config.get('from_number'),
        timeout=config.get('http_timeout_seconds', 30.0)
    )
