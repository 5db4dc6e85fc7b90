from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "apothecary"
    POSTGRES_USER: str = "apothecary"
    POSTGRES_PASSWORD: str = "apothecary"
    # Full SQLAlchemy URL; overrides the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None

    # Tokens are issued by the identity provider with this shared secret
    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    # Transactional email (Resend-compatible REST API)
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com"
    RESEND_FROM_ADDRESS: str = "Leyla's Apothecary <hello@leylas-apothecary.com>"

    # Availability RPC (PostgREST style)
    AVAILABILITY_RPC_URL: str = "http://localhost:54321/rest/v1"
    AVAILABILITY_RPC_KEY: str = ""

    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
