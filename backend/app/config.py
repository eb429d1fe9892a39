from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


# Display name -> remote bot id on the chat platform
DEFAULT_AGENT_BOT_IDS = {
    "Art Critic": "7524345845467299855",
    "General Audience": "7524345845467136015",
    "Art Theorist": "7524344850851168291",
    "Art Historian": "7524342395841396736",
    "Painter": "7524341444501782567",
    "Art Collector": "7524340821945630783",
    "VTS": "7524342433057046574",
    "Artagent": "7527602426371751977",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Coze chat platform
    # Default empty string allows tests to run without .env, but remote calls will be rejected
    coze_api_token: str = ""
    coze_base_url: str = "https://api.coze.cn"

    # Agent catalog, overridable as JSON: AGENT_BOT_IDS='{"Painter": "123"}'
    agent_bot_ids: dict[str, str] = DEFAULT_AGENT_BOT_IDS

    # Turn polling
    # Single-agent chat gets a longer budget than each debate turn
    chat_max_retries: int = 200
    debate_max_retries: int = 100
    poll_interval_seconds: float = 1.0
    not_found_retry_limit: int = 3

    # Streaming jobs that are initialized but never opened are evicted after this window
    stream_idle_timeout_seconds: float = 30 * 60
    stream_sweep_interval_seconds: float = 60.0

    http_timeout_seconds: float = 30.0

    # CORS for frontend
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite default

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
