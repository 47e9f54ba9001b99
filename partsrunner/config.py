from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Force-load .env from the project root so every entrypoint sees the same keys
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

HOUSE_ACCOUNT_ID = "00000000-0000-0000-0000-000000000000"


class Settings(BaseSettings):
    """Process configuration, validated once at startup.

    Missing payment-provider keys, datastore URL or base URL make
    ``Settings()`` raise, so a misconfigured deployment fails before it
    serves a single request.
    """

    model_config = SettingsConfigDict(extra="ignore")

    stripe_secret_key: str = Field(min_length=1)
    stripe_publishable_key: str = Field(min_length=1)
    stripe_webhook_secret: str = Field(min_length=1)

    database_url: str = Field(min_length=1)
    supabase_jwt_secret: str = Field(min_length=1)
    app_base_url: str = Field(min_length=1)

    house_account_id: str = HOUSE_ACCOUNT_ID
    default_currency: str = "usd"
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
