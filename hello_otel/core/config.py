# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Collector credential, required: the service does not start without it
    NEWRELIC_LICENSE_KEY: str

    # Listener configuration
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 3000

    @field_validator("NEWRELIC_LICENSE_KEY")
    @classmethod
    def license_key_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("NEWRELIC_LICENSE_KEY must not be empty")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_settings() -> Settings:
    """Read the settings from the environment (and .env)."""
    return Settings()
