"""
End-to-end webhook flow through the FastAPI app.

Twilio and Vapi are replaced with AsyncMocks; everything else is real.
"""

import pytest
from fastapi.testclient import TestClient
from twilio.request_validator import RequestValidator

from api.main import app
from config.settings import get_settings
from services.telephony.twilio_service import TwilioAPIError
from services.transfer.orchestrator import get_orchestrator


BASE_URL = "https://relay.example.com"
HR = "+15552220000"
CONSULTANT = "+15551110000"
VAPI_ORIGIN = {"Origin": "https://api.vapi.ai"}


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def transfer_body(department, token):
    return {"department": department, "toolCallList": [{"id": token}]}


class TestTransferScenarios:
    """Inbound call -> transfer -> status callback."""

    def test_scenario_inbound_then_transfer(self, client, registry, twilio, assistant):
        response = client.post("/inbound_call", data={"CallSid": "CA1", "Caller": "+15550001"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert response.text == "<Response><Connect/></Response>"
        assert registry.get_active_customer_call() == "CA1"
        assistant.connect_caller.assert_awaited_once_with("+15550001")

        response = client.post("/connect", json=transfer_body("hr", "t1"), headers=VAPI_ORIGIN)

        assert response.status_code == 200
        assert response.json() == {"results": [{"toolCallId": "t1", "result": "Transfer initiated to hr."}]}
        twilio.update_call.assert_awaited_once_with("CA1", f"{BASE_URL}/conference")
        twilio.create_call.assert_awaited_once_with(
            to_number=HR,
            url=f"{BASE_URL}/conference",
            status_callback=f"{BASE_URL}/participant-status"
        )

    def test_scenario_department_no_answer(self, client, registry, twilio):
        client.post("/inbound_call", data={"CallSid": "CA1", "Caller": "+15550001"})
        client.post("/connect", json=transfer_body("hr", "t1"), headers=VAPI_ORIGIN)
        twilio.update_call.reset_mock()

        response = client.post("/participant-status", data={"CallSid": "CAhr1", "CallStatus": "no-answer"})

        assert response.status_code == 200
        twilio.update_call.assert_awaited_once_with("CA1", f"{BASE_URL}/announce")

    def test_status_acknowledged_when_redirect_fails(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")
        twilio.update_call.side_effect = TwilioAPIError("Call already completed", status_code=400)

        response = client.post("/participant-status", data={"CallSid": "CAhr1", "CallStatus": "busy"})

        assert response.status_code == 200
        assert response.text == "OK"

    def test_status_acknowledged_on_unexpected_error(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")
        twilio.update_call.side_effect = RuntimeError("boom")

        response = client.post("/participant-status", data={"CallSid": "CAhr1", "CallStatus": "failed"})

        assert response.status_code == 200

    def test_status_in_progress_needs_no_redirect(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")

        response = client.post("/participant-status", data={"CallSid": "CAhr1", "CallStatus": "in-progress"})

        assert response.status_code == 200
        twilio.update_call.assert_not_awaited()

    def test_scenario_unknown_department_without_inbound_call(self, client, twilio):
        response = client.post("/connect", json=transfer_body("unknown-word", "t3"), headers=VAPI_ORIGIN)

        assert response.status_code == 500
        result = response.json()["results"][0]
        assert result["toolCallId"] == "t3"
        assert "no active customer call" in result["error"]
        twilio.update_call.assert_not_awaited()
        twilio.create_call.assert_not_awaited()

    def test_dial_failure_returns_error_keyed_by_token(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")
        twilio.create_call.side_effect = TwilioAPIError("Invalid 'To' number", status_code=400)

        response = client.post("/connect", json=transfer_body("it", "t9"), headers=VAPI_ORIGIN)

        assert response.status_code == 500
        assert response.json()["results"][0]["toolCallId"] == "t9"
        twilio.update_call.assert_awaited_with("CA1", f"{BASE_URL}/announce")

    def test_wrapped_vapi_tool_call(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")
        body = {
            "message": {
                "type": "tool-calls",
                "toolCallList": [{"id": "call_1", "function": {"name": "transfer", "arguments": {"department": "Sales"}}}]
            }
        }

        response = client.post("/connect", json=body, headers={"Referer": "https://api.vapi.ai/tools"})

        assert response.status_code == 200
        assert response.json()["results"][0] == {"toolCallId": "call_1", "result": "Transfer initiated to sales."}
        assert twilio.create_call.await_args.kwargs["to_number"] == CONSULTANT

    def test_invalid_json_body_uses_defaults(self, client, registry):
        registry.set_active_customer_call("CA1")

        response = client.post(
            "/connect",
            content=b"not json",
            headers={**VAPI_ORIGIN, "Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json()["results"][0]["toolCallId"] == "transfer_1"

    def test_wrong_shaped_tool_call_list_still_gets_tool_result(self, client, registry):
        registry.set_active_customer_call("CA1")

        response = client.post("/connect", json={"toolCallList": {"id": "t1"}}, headers=VAPI_ORIGIN)

        assert response.status_code == 200
        assert response.json() == {
            "results": [{"toolCallId": "transfer_1", "result": "Transfer initiated to consultant."}]
        }

    def test_callback_urls_follow_forwarded_host(self, client, orchestrator, registry, twilio):
        orchestrator.public_base_url = ""
        registry.set_active_customer_call("CA1")

        client.post(
            "/connect",
            json=transfer_body("hr", "t1"),
            headers={**VAPI_ORIGIN, "X-Forwarded-Proto": "https", "X-Forwarded-Host": "abc.ngrok.io"}
        )

        twilio.update_call.assert_awaited_once_with("CA1", "https://abc.ngrok.io/conference")
        assert twilio.create_call.await_args.kwargs["status_callback"] == "https://abc.ngrok.io/participant-status"


class TestAssistantFailure:
    """Inbound call when Vapi is unreachable."""

    def test_spoken_error(self, client, registry, assistant):
        from services.assistant.vapi_service import VapiAPIError
        assistant.connect_caller.side_effect = VapiAPIError("Vapi returned 502")

        response = client.post("/inbound_call", data={"CallSid": "CA1", "Caller": "+15550001"})

        assert response.status_code == 200
        assert "<Say>Connection error.</Say>" in response.text
        assert registry.get_active_customer_call() == "CA1"


class TestTwimlEndpoints:
    """Static TwiML routes."""

    def test_conference(self, client):
        response = client.post("/conference")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert 'startConferenceOnEnter="true"' in response.text
        assert 'endConferenceOnExit="true"' in response.text
        assert "interactive_cue_room" in response.text

    def test_announce(self, client):
        response = client.post("/announce")

        assert response.status_code == 200
        assert "<Say>Sorry, everyone is busy.</Say>" in response.text
        assert "<Hangup/>" in response.text

    def test_health(self, client):
        response = client.get("/health")

        assert response.json()["status"] == "healthy"


class TestToolOrigin:
    """Only the assistant provider may trigger transfers."""

    def test_missing_origin_is_rejected(self, client, registry, twilio):
        registry.set_active_customer_call("CA1")

        response = client.post("/connect", json=transfer_body("hr", "t1"))

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized source"}
        twilio.update_call.assert_not_awaited()

    def test_foreign_origin_is_rejected(self, client):
        response = client.post("/connect", json=transfer_body("hr", "t1"), headers={"Origin": "https://evil.example"})

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized source"}

    def test_origin_check_can_be_disabled(self, client, registry, monkeypatch):
        monkeypatch.setattr(get_settings(), "enforce_tool_origin", False)
        registry.set_active_customer_call("CA1")

        response = client.post("/connect", json=transfer_body("hr", "t1"))

        assert response.status_code == 200


class TestTwilioSignature:
    """X-Twilio-Signature validation on Twilio webhooks."""

    @pytest.fixture
    def enforce_signatures(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "skip_twilio_signature_validation", False)
        monkeypatch.setattr(get_settings(), "public_base_url", "")

    def sign(self, url, params):
        return RequestValidator(get_settings().twilio_auth_token).compute_signature(url, params)

    def test_valid_signature_accepted(self, client, registry, enforce_signatures):
        registry.set_active_customer_call("CA1")
        params = {"CallSid": "CAhr1", "CallStatus": "ringing"}
        signature = self.sign("http://testserver/participant-status", params)

        response = client.post("/participant-status", data=params, headers={"X-Twilio-Signature": signature})

        assert response.status_code == 200

    def test_signature_uses_forwarded_headers(self, client, enforce_signatures):
        params = {"CallSid": "CA1", "Caller": "+15550001"}
        signature = self.sign("https://abc.ngrok.io/inbound_call", params)

        response = client.post(
            "/inbound_call",
            data=params,
            headers={
                "X-Twilio-Signature": signature,
                "X-Forwarded-Proto": "https",
                "X-Forwarded-Host": "abc.ngrok.io",
            }
        )

        assert response.status_code == 200

    def test_invalid_signature_rejected(self, client, registry, enforce_signatures):
        response = client.post(
            "/inbound_call",
            data={"CallSid": "CA1", "Caller": "+15550001"},
            headers={"X-Twilio-Signature": "bogus"}
        )

        assert response.status_code == 403
        assert registry.get_active_customer_call() == ""

    def test_missing_signature_rejected(self, client, enforce_signatures):
        response = client.post("/conference")

        assert response.status_code == 403
