"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    db_server: str
    db_name: str
    db_user: str
    db_password: str
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False

    # JWT settings
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 720
    jwt_issuer: str = "taskflow-app"
    jwt_audience: str = "taskflow-users"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # WebSocket settings
    ws_max_message_size: int = 65536  # 64KB max frame size
    ws_rate_limit_messages: int = 100  # Max messages per window
    ws_rate_limit_window: float = 10.0  # Window in seconds
    ws_receive_timeout: float = 60.0  # Idle time before probing the client
    ws_pong_timeout: float = 10.0  # Grace period after a server ping
    ws_ping_interval: float = 25.0  # Server-initiated keepalive
    # Last-connect-wins: close the superseded socket of the same user
    ws_close_replaced_connections: bool = True
    # 0 keeps the "verified once at connect" behaviour
    ws_token_revalidation_interval: int = 0

    # Content limits
    comment_max_length: int = 5000
    project_message_max_length: int = 10000

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
