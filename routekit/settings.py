from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from routekit.constants import (
    ENV_DEVELOPMENT,
    ENV_PREFIX,
    ENV_PRODUCTION,
    LOG_LEVEL,
    WEB_HOST,
    WEB_PORT,
)


class Settings(BaseSettings):
    """
    Environment-derived settings for routekit.

    Attributes:
        env (str): Deployment environment; ``production`` enables module and
            template caching.
        host (str): Default interface for ``listen``.
        port (int): Default port for ``listen``.
        log_level (str): Root logging level used by the CLI.
        routes (str | None): Default handler directory.
    """
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX)

    env: str = ENV_DEVELOPMENT
    host: str = WEB_HOST
    port: int = WEB_PORT
    log_level: str = LOG_LEVEL
    routes: Optional[str] = None

    @property
    def is_prod(self) -> bool:
        return self.env.lower() == ENV_PRODUCTION


def get_settings() -> Settings:
    """
    Return a fresh settings instance read from the current environment.

    Returns:
        Settings: The current configuration settings instance.
    """
    return Settings()
