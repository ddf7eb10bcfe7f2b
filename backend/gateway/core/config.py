from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "bailian-gateway"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    API_V1_STR: str = "/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Upstream (Bailian app completion API)
    ALIYUN_APP_ID: str = ""
    ALIYUN_API_KEY: str = ""
    ALIYUN_BASE_URL: str = "https://dashscope.aliyuncs.com"
    PROXY_URL: str = ""
    USE_NATIVE_API: bool = True

    # Outbound transport, seconds / connection counts
    REQUEST_TIMEOUT: int = 180
    STREAM_TIMEOUT: int = 600
    CONNECT_TIMEOUT: int = 10
    MAX_CONNS_PER_HOST: int = 100
    MAX_IDLE_CONNS: int | None = None  # total idle pool; falls back to the per-host value
    MAX_IDLE_CONNS_PER_HOST: int = 50
    IDLE_CONN_TIMEOUT: int = 90

    RATE_LIMIT_PER_MINUTE: int = 600
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def native_endpoint(self) -> str:
        return f"{self.ALIYUN_BASE_URL}/api/v1/apps/{self.ALIYUN_APP_ID}/completion"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def compatible_endpoint(self) -> str:
        return (
            f"{self.ALIYUN_BASE_URL}/api/v2/apps/agent/{self.ALIYUN_APP_ID}"
            "/compatible-mode/v1/chat/completions"
        )

    def check_credentials(self) -> None:
        """Fail fast when the upstream app id or API key is missing."""
        if not self.ALIYUN_APP_ID:
            raise RuntimeError("ALIYUN_APP_ID must be set")
        if not self.ALIYUN_API_KEY:
            raise RuntimeError("ALIYUN_API_KEY must be set")


settings = Settings()  # type: ignore
