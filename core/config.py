from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Forum Topics"
    APP_VERSION: str = "1.0.0"

    # Database
    DB_DRIVER: str = "sqlite"
    DB_NAME: str = "forum.db"
    DB_USER: str | None = None
    DB_PASS: str | None = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    SQL_ECHO: bool = False

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_DRIVER == "sqlite":
            return f"sqlite:///{self.DB_NAME}"
        return f"postgresql://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    TEST_DATABASE_URL: str = "sqlite://"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # console | json

    # Demo data
    SEED_DEMO_DATA: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    # .env lives next to main.py
    project_dir = Path(__file__).resolve().parent.parent
    return Settings(_env_file=project_dir / ".env")
