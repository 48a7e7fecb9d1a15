"""Settings schema for Linux Helper."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ModelSettings(BaseModel):
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible chat completion endpoint root",
    )
    model: str = Field(default="gpt-4o-mini")
    api_key_env: str = Field(
        default="LINUX_HELPER_API_KEY",
        description="Environment variable holding the API key",
    )
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_steps: int = Field(default=5, ge=1, le=20)
    request_timeout: float = Field(default=60.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8787, ge=0, le=65535)
    agent_name: str = Field(default="LinuxHelperAgent")
    default_conversation: str = Field(default="default")


class AppearanceSettings(BaseModel):
    theme: str = Field(default="textual-dark", description="Textual theme name")


class AppSettings(BaseModel):
    schema_version: int = Field(default=1)
    model: ModelSettings = Field(default_factory=ModelSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    appearance: AppearanceSettings = Field(default_factory=AppearanceSettings)
