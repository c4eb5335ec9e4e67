from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AnyHttpUrl, Field

DEFAULT_API_PATH = "/wp-json/wp/v2"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # --- Server ---
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # --- CORS ---
    cors_allowed_origins: str = Field(default="*", validation_alias="CORS_ALLOWED_ORIGINS")

    # --- Core timeouts ---
    request_timeout: float = Field(default=30.0, validation_alias="REQUEST_TIMEOUT")

    # WordPress REST backend
    wordpress_url: AnyHttpUrl | None = Field(default=None, validation_alias="WORDPRESS_URL")
    wordpress_api_path: str = Field(default=DEFAULT_API_PATH, validation_alias="WORDPRESS_API_PATH")
    wordpress_user: str | None = Field(default=None, validation_alias="WORDPRESS_USER")
    wordpress_password: str | None = Field(default=None, validation_alias="WORDPRESS_PASSWORD")

    # MCP transport
    mcp_bearer_token: Optional[str] = Field(default=None, validation_alias="MCP_BEARER_TOKEN")
    mcp_session_idle_timeout: float = Field(default=1800.0, validation_alias="MCP_SESSION_IDLE_TIMEOUT")
    mcp_session_sweep_interval: float = Field(default=60.0, validation_alias="MCP_SESSION_SWEEP_INTERVAL")
    mcp_default_response_mode: str = Field(default="json", validation_alias="MCP_DEFAULT_RESPONSE_MODE")
    mcp_sse_heartbeat: float = Field(default=15.0, validation_alias="MCP_SSE_HEARTBEAT")

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    @property
    def wordpress_configured(self) -> bool:
        return bool(self.wordpress_url and self.wordpress_user and self.wordpress_password)


@lru_cache
def get_settings() -> Settings:
    return Settings()
