from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    dynamodb_endpoint_url: Optional[str] = Field(
        "http://dynamodb-local:8000", alias="DYNAMODB_ENDPOINT_URL"
    )
    aws_region: str = Field("us-east-1", alias="AWS_DEFAULT_REGION")
    aws_access_key_id: str = Field("fake", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("fake", alias="AWS_SECRET_ACCESS_KEY")
    table_name: str = Field("EventBoard", alias="TABLE_NAME")

    auth_service_url: str = Field("http://auth-service:8000", alias="AUTH_SERVICE_URL")
    auth_timeout_seconds: float = Field(5, alias="AUTH_TIMEOUT_SECONDS")

    default_page_size: int = Field(10, alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(100, alias="MAX_PAGE_SIZE")

    bcrypt_rounds: int = Field(12, alias="BCRYPT_ROUNDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # tell Pydantic to read from the .env file
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )

    @property
    def endpoint_url(self) -> Optional[str]:
        # an empty value means "use the regional AWS endpoint"
        return self.dynamodb_endpoint_url or None


@lru_cache
def get_settings() -> Settings:
    return Settings()
