"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a security assistant. Answer penetration testing, bug bounty and "
    "red team questions precisely and use markdown for code and command output."
)

DEFAULT_CONTEXT_SYSTEM_PROMPT = (
    "You are a security assistant. The user message is followed by tool output "
    "or retrieved context. Base your answer on that context, quote relevant "
    "findings and say so when the context does not contain the answer."
)


class ModelConfig(BaseModel):
    """Chat model exposed to clients and how it maps onto a completion backend."""

    token_limit: int = Field(default=8000, ge=256)
    backend: str = "openai"
    upstream_model: str = ""
    # Used instead of backend/upstream_model when tool or search context is attached.
    context_backend: str | None = None
    context_upstream_model: str | None = None
    widen_reserve: bool = False
    plugins: bool = True  # Model may run every plugin, not only the model-agnostic ones


def _default_models() -> dict[str, ModelConfig]:
    return {
        "gpt-4": ModelConfig(
            token_limit=12000,
            backend="openai",
            upstream_model="gpt-4-1106-preview",
        ),
        "gpt-3.5-turbo-instruct": ModelConfig(
            token_limit=7000,
            backend="openrouter",
            upstream_model="mistralai/mixtral-8x7b-instruct",
            context_backend="openai",
            context_upstream_model="gpt-4-1106-preview",
            widen_reserve=True,
            plugins=False,
        ),
    }


class BackendConfig(BaseModel):
    """OpenAI-compatible completion endpoint."""

    api_base: str = "https://api.openai.com/v1"
    api_key: str = ""
    extra_headers: dict[str, str] = Field(default_factory=dict)
    clean_history: bool = False
    timeout_s: float = Field(default=120.0, gt=0)

    @field_validator("api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


def _default_backends() -> dict[str, BackendConfig]:
    return {
        "openai": BackendConfig(api_base="https://api.openai.com/v1"),
        "openrouter": BackendConfig(
            api_base="https://openrouter.ai/api/v1",
            extra_headers={"HTTP-Referer": "https://localhost", "X-Title": "scanchat"},
            clean_history=True,
        ),
    }


class PromptsConfig(BaseModel):
    """System prompts for plain chat and for context-backed answers."""

    system: str = DEFAULT_SYSTEM_PROMPT
    context: str = DEFAULT_CONTEXT_SYSTEM_PROMPT
    usage_warning_markers: list[str] = Field(
        default_factory=lambda: [
            "Hold On! You've Hit Your Usage Cap.",
            "Whoa, hold on a sec!",
            "⏰ You can use the tool again in",
            "We apologize for any inconvenience, but",
        ]
    )


class WindowConfig(BaseModel):
    """Token budget reserve for the completion response."""

    response_margin: int = Field(default=2000, ge=0)
    widened_margin: int = Field(default=3500, ge=0)
    short_message_chars: int = Field(default=50, ge=0)
    long_message_chars: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "WindowConfig":
        if self.short_message_chars > self.long_message_chars:
            raise ValueError("short_message_chars must not exceed long_message_chars")
        return self


class ToolToggle(BaseModel):
    """Per-plugin feature flag. Tools stay off until enabled."""

    enabled: bool = False


class PluginsConfig(BaseModel):
    """Plugin backend settings."""

    base_url: str = "http://127.0.0.1:8080"
    secret: str = ""
    heartbeat_interval_s: float = Field(default=15.0, gt=0)
    max_wait_s: float = Field(default=300.0, gt=0)
    tools: dict[str, ToolToggle] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def is_enabled(self, tool_id: str) -> bool:
        toggle = self.tools.get(tool_id)
        return toggle is not None and toggle.enabled


class WebSearchConfig(BaseModel):
    """Web browsing plugin: search results used as answer context."""

    enabled: bool = False
    api_key: str = ""  # Google Programmable Search API key
    engine_id: str = ""
    endpoint: str = "https://customsearch.googleapis.com/customsearch/v1"
    max_results: int = Field(default=5, ge=1, le=10)
    page_timeout_s: float = Field(default=5.0, gt=0)
    page_tokens: int = Field(default=400, ge=1)


class RetrievalConfig(BaseModel):
    """Vector-store retrieval context for enhanced search turns."""

    enabled: bool = False
    query_url: str = ""  # e.g. https://<index>-<project>.svc.<env>.pinecone.io/query
    api_key: str = ""
    namespace: str = ""
    embedding_model: str = "text-embedding-ada-002"
    embedding_api_key: str = ""
    top_k: int = Field(default=3, ge=1)
    min_matches: int = Field(default=3, ge=0)
    min_score: float = 0.8
    max_chars: int = Field(default=7500, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    prompt: str = "Use the following context when it is relevant to the question."
    timeout_s: float = Field(default=10.0, gt=0)


class SearchConfig(BaseModel):
    """Context sources for context-backed answers."""

    web: WebSearchConfig = Field(default_factory=WebSearchConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)


class AuthConfig(BaseModel):
    """Entitlement status check performed before every chat turn."""

    status_url: str = ""
    skip_status_check: bool = True
    timeout_s: float = Field(default=10.0, gt=0)


class PublicModelConfig(BaseModel):
    """Model accepted by the public completions endpoint."""

    token_limit: int = Field(default=8000, ge=256)
    route: str = "gpt-3.5-turbo-instruct"  # Internal chat model used to serve it


class PublicAPIConfig(BaseModel):
    """Public OpenAI-style completions endpoint."""

    enabled: bool = True
    api_keys: list[str] = Field(default_factory=list)
    max_tokens_limit: int = Field(default=2000, ge=1)
    models: dict[str, PublicModelConfig] = Field(
        default_factory=lambda: {"hackergpt": PublicModelConfig()}
    )


class APIConfig(BaseModel):
    """API surface configuration."""

    public: PublicAPIConfig = Field(default_factory=PublicAPIConfig)
    expose_upstream_errors: bool = False


class RateLimitConfig(BaseModel):
    """Rate limiting configuration."""
    enabled: bool = False
    messages_per_minute: int = 20
    tool_calls_per_minute: int = 6


class ServerConfig(BaseModel):
    """uvicorn bind settings."""

    model_config = ConfigDict(populate_by_name=True)

    host: str = "127.0.0.1"
    port: int = Field(default=18790, ge=1, le=65535)
    log_level: Literal["debug", "info", "warning", "error"] = "info"


class Config(BaseSettings):
    """Root configuration for scanchat."""

    model_config = SettingsConfigDict(env_prefix="SCANCHAT_", env_nested_delimiter="__")

    models: dict[str, ModelConfig] = Field(default_factory=_default_models)
    backends: dict[str, BackendConfig] = Field(default_factory=_default_backends)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    window: WindowConfig = Field(default_factory=WindowConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _check_backend_refs(self) -> "Config":
        for name, model in self.models.items():
            for ref in (model.backend, model.context_backend):
                if ref is not None and ref not in self.backends:
                    raise ValueError(f"Model '{name}' references unknown backend '{ref}'")
        return self
