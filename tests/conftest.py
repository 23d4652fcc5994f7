"""
Shared fixtures for the call transfer relay tests.

Environment is populated before any project module is imported, since
config.settings reads it on first use.
"""

import os
import tempfile

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SKIP_TWILIO_SIGNATURE_VALIDATION", "true")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "call-transfer-relay-tests.log"))
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-auth-token")
os.environ.setdefault("FROM_NUMBER", "+15550000000")
os.environ.setdefault("VAPI_PRIVATE_API_KEY", "vapi-key")
os.environ.setdefault("VAPI_ASSISTANT_ID", "assistant-1")
os.environ.setdefault("VAPI_PHONE_NUMBER_ID", "phone-1")
os.environ.setdefault("CONSULTANT_NUMBER", "+15551110000")
os.environ.setdefault("HR_NUMBER", "+15552220000")
os.environ.setdefault("IT_NUMBER", "+15553330000")

import pytest
from unittest.mock import AsyncMock

from services.telephony.twiml import ConferenceBridgeController, FallbackAnnouncer
from services.transfer.call_registry import CallStateRegistry
from services.transfer.directory import DepartmentDirectory
from services.transfer.orchestrator import TransferOrchestrator


CONSULTANT = "+15551110000"
HR = "+15552220000"
IT = "+15553330000"
BASE_URL = "https://relay.example.com"


@pytest.fixture
def directory(tmp_path):
    # Point at a missing file so only the built-in aliases apply
    return DepartmentDirectory(
        numbers={"consultant": CONSULTANT, "hr": HR, "it": IT},
        config_path=str(tmp_path / "missing.yaml")
    )


@pytest.fixture
def registry():
    return CallStateRegistry()


@pytest.fixture
def twilio():
    mock = AsyncMock()
    mock.update_call.return_value = {"sid": "CA-updated", "status": "in-progress"}
    mock.create_call.return_value = {"sid": "CAhr1", "status": "queued"}
    return mock


@pytest.fixture
def assistant():
    mock = AsyncMock()
    mock.connect_caller.return_value = "<Response><Connect/></Response>"
    return mock


@pytest.fixture
def orchestrator(directory, registry, twilio, assistant):
    return TransferOrchestrator(
        directory=directory,
        registry=registry,
        twilio=twilio,
        bridge=ConferenceBridgeController("interactive_cue_room"),
        announcer=FallbackAnnouncer("Sorry, everyone is busy."),
        assistant=assistant,
        public_base_url=BASE_URL
    )
