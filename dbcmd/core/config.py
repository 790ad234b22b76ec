"""
Process-wide settings, read from ``DBCMD_*`` environment variables or a
``.env`` file in the working directory.

Read by the CLI, the standard layer factories and the connection helpers
(timeouts). The renderer, executor and code generator take everything as
arguments.
"""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from dbcmd.models import ProductTypeEnum


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DBCMD_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    LOG_LEVEL: str = "WARNING"

    # Defaults for the sql-connection layer
    DB_TYPE: ProductTypeEnum = ProductTypeEnum.POSTGRES
    DB_HOST: str = "localhost"
    DB_PORT: int | None = None
    DB_DATABASE: str | None = None
    DB_USER: str | None = None
    DB_PASSWORD: str | None = None
    DB_SCHEMA: str | None = None

    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10
    # Seconds; None or 0 disables the per-statement timeout
    EXTERNAL_DB_STATEMENT_TIMEOUT: float | None = None

    DBT_PROFILES_PATH: str = "~/.dbt/profiles.yml"

    # Command repositories mounted by the CLI, separated like PATH
    REPOSITORIES: str = ""

    @property
    def repository_paths(self) -> list[str]:
        return [p for p in self.REPOSITORIES.split(os.pathsep) if p.strip()]


settings = Settings()
