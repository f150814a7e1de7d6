# storefront/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized storefront settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key, row-level security applies)

    Optional:
      - SUPABASE_JWT_SECRET (only needed to sign in from a raw access token)
      - CART_TABLE / WISHLIST_TABLE / PRODUCTS_TABLE (table names)
      - PROVISIONAL_KEY_PREFIX (tag for locally minted wishlist keys)
      - LOG_LEVEL
    """

    PROJECT_NAME: str = "Grocery Storefront"

    # Supabase config
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # JWT verification (client-side sign in from a token)
    SUPABASE_JWT_SECRET: str | None = None
    SUPABASE_JWT_ALG: str = "HS256"

    # Remote collection tables
    CART_TABLE: str = "cart_items"
    WISHLIST_TABLE: str = "wishlists"
    PRODUCTS_TABLE: str = "products"

    PROVISIONAL_KEY_PREFIX: str = "local_"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import.
    """
    return Settings()
