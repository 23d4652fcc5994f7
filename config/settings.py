"""
=====================================================
Call Transfer Relay - Configuration Module
=====================================================
Centralized configuration management using pydantic-settings
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    # =====================================================
    # APPLICATION
    # =====================================================
    app_name: str = "Call Transfer Relay"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="logs/call-transfer-relay.log", alias="LOG_FILE")
    debug: bool = False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Public URL Twilio reaches us on (e.g. the ngrok URL).
    # When empty, it is derived from X-Forwarded-Proto + Host per request.
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")

    # =====================================================
    # TWILIO
    # =====================================================
    twilio_account_sid: str = Field(..., alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(..., alias="TWILIO_AUTH_TOKEN")
    from_number: str = Field(..., alias="FROM_NUMBER")
    skip_twilio_signature_validation: bool = Field(
        default=False,
        alias="SKIP_TWILIO_SIGNATURE_VALIDATION"
    )
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # =====================================================
    # VAPI (AI assistant)
    # =====================================================
    vapi_private_api_key: str = Field(..., alias="VAPI_PRIVATE_API_KEY")
    vapi_assistant_id: str = Field(..., alias="VAPI_ASSISTANT_ID")
    vapi_phone_number_id: str = Field(..., alias="VAPI_PHONE_NUMBER_ID")
    vapi_base_url: str = Field(default="https://api.vapi.ai/call", alias="VAPI_BASE_URL")

    # Only tool calls coming from this origin may trigger /connect
    tool_allowed_origin: str = Field(default="api.vapi.ai", alias="TOOL_ALLOWED_ORIGIN")
    enforce_tool_origin: bool = Field(default=True, alias="ENFORCE_TOOL_ORIGIN")

    # =====================================================
    # DEPARTMENTS
    # =====================================================
    consultant_number: str = Field(..., alias="CONSULTANT_NUMBER")
    hr_number: str = Field(default="", alias="HR_NUMBER")
    it_number: str = Field(default="", alias="IT_NUMBER")
    default_department: str = Field(default="consultant", alias="DEFAULT_DEPARTMENT")
    departments_config_path: Optional[str] = Field(default=None, alias="DEPARTMENTS_CONFIG_PATH")

    # =====================================================
    # TRANSFER
    # =====================================================
    conference_room_name: str = Field(default="interactive_cue_room", alias="CONFERENCE_ROOM_NAME")
    fallback_message: str = Field(
        default=(
            "I apologize, but our consultants are currently busy. "
            "Please call back in a few minutes. "
            "Thank you for your understanding, goodbye."
        ),
        alias="FALLBACK_MESSAGE"
    )
    # Play the fallback to the customer when dialing the department fails outright
    announce_on_dial_failure: bool = Field(default=True, alias="ANNOUNCE_ON_DIAL_FAILURE")

    @field_validator("public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("default_department")
    @classmethod
    def _normalize_department(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def department_numbers(self) -> dict:
        """Department numbers configured through the environment"""
        return {
            "consultant": self.consultant_number,
            "hr": self.hr_number,
            "it": self.it_number,
        }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
