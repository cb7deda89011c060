from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="coderelay")
    app_version: str = Field(default="0.1.0")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Observability
    otel_exporter_otlp_endpoint: str = Field(default="http://jaeger:4318")
    otel_service_name: str = Field(default="coderelay")
    log_level: str = Field(default="INFO")

    # Provider API keys. Field names mirror the environment variable names;
    # matching is case-insensitive so HuggingFace_API_KEY lands on
    # huggingface_api_key.
    anthropic_api_key: SecretStr | None = Field(default=None)
    openai_api_key: SecretStr | None = Field(default=None)
    google_generative_ai_api_key: SecretStr | None = Field(default=None)
    groq_api_key: SecretStr | None = Field(default=None)
    huggingface_api_key: SecretStr | None = Field(default=None)
    open_router_api_key: SecretStr | None = Field(default=None)
    deepseek_api_key: SecretStr | None = Field(default=None)
    mistral_api_key: SecretStr | None = Field(default=None)
    openai_like_api_key: SecretStr | None = Field(default=None)
    xai_api_key: SecretStr | None = Field(default=None)
    cohere_api_key: SecretStr | None = Field(default=None)

    # Self-hosted provider endpoints
    openai_like_api_base_url: str | None = Field(default=None)
    lmstudio_api_base_url: str | None = Field(default=None)
    ollama_api_base_url: str | None = Field(default=None)
    running_in_docker: bool = Field(default=False)
    default_num_ctx: int = Field(default=32768, gt=0)

    # Prompting
    work_dir: str = Field(default="/home/project")

    # LLM call behaviour
    llm_timeout: int = Field(default=600)
    llm_max_retries: int = Field(default=1, ge=1)

    # Model catalog
    catalog_fetch_timeout: float = Field(default=10.0, gt=0)
    catalog_ttl: int = Field(default=300, ge=0)


settings = Settings()
