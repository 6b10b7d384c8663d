"""Pydantic models for pagewright configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a website building assistant. When asked to create or change a "
    "site, reply with a complete, self-contained HTML document (inline CSS "
    "and JavaScript) starting with <!DOCTYPE html>."
)


class ProviderConfig(BaseModel):
    """Configuration for a single text-generation provider."""

    enabled: bool = True
    api_key: str | None = None
    api_key_env: list[str] = Field(default_factory=list)
    base_url: str | None = None
    default_model: str | None = None
    timeout: float = 30.0


class RetrySettings(BaseModel):
    """Retry with backoff for individual provider calls."""

    max_attempts: int = 3
    base_delay: float = 0.8
    max_delay: float = 8.0
    jitter: bool = True


class HealthSettings(BaseModel):
    """Health classification policy and probe settings."""

    unhealthy_threshold: int = 3
    max_history: int = 100
    probe_timeout: float = 10.0
    probe_prompt: str = 'Hello, please respond with "OK" if you can read this message.'


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    structured: bool = False


class RelayConfig(BaseModel):
    """Settings for the local AI relay server."""

    host: str = "127.0.0.1"
    port: int = 3001
    base_path: str = "/api/ai-sdk"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class GeneralConfig(BaseModel):
    """General engine settings."""

    default_provider: str | None = None
    priority: list[str] = Field(
        default_factory=lambda: ["proxy", "google", "openai", "anthropic", "cohere"]
    )
    stream_output: bool = True
    temperature: float = 0.7
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    settings_path: str = "~/.local/share/pagewright/settings.json"


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "google": ProviderConfig(
            api_key_env=[
                "GOOGLE_GENERATIVE_AI_API_KEY",
                "GOOGLE_API_KEY",
                "GEMINI_API_KEY",
            ],
            default_model="gemini-2.5-flash",
        ),
        "openai": ProviderConfig(api_key_env=["OPENAI_API_KEY"], default_model="gpt-4o"),
        "anthropic": ProviderConfig(
            api_key_env=["ANTHROPIC_API_KEY"],
            default_model="claude-sonnet-4-5-20250929",
        ),
        "cohere": ProviderConfig(
            api_key_env=["COHERE_API_KEY"], default_model="command-r-plus"
        ),
        "proxy": ProviderConfig(
            api_key_env=["PROXY_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"],
        ),
    }


class PagewrightConfig(BaseModel):
    """Top-level configuration for pagewright."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)

    def provider(self, provider_id: str) -> ProviderConfig:
        """Return the config for *provider_id*, or defaults if absent."""
        return self.providers.get(provider_id) or ProviderConfig()
