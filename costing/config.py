from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    database_url: str = "postgresql://localhost:5432/costing"
    billing_store: Literal["postgres", "http", "memory"] = "postgres"
    billing_api_url: str = "http://localhost:3000/api"
    billing_api_timeout: float = 15.0
    default_productivity_level: str = "medium"
    default_page_size: int = 50
    max_page_size: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def model_post_init(self, __context):
        # Older deployments pointed the console at the REST backend with a trailing slash
        self.billing_api_url = self.billing_api_url.rstrip("/")
        self.default_productivity_level = self.default_productivity_level.strip().lower()

settings = Settings()
