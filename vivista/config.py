from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database: database_url wins unless db_host is set (then PostgreSQL is used)
    database_url: str = "sqlite:///./vivista.db"
    db_host: str = ""
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = ""
    db_name: str = "postgres"

    # Blob storage: one directory per video id (empty = backend/uploads/videos)
    data_dir: str = ""

    # Sessions
    session_window_minutes: int = 60
    session_sweep_interval_minutes: int = 0  # 0 = expired sessions are only purged on use

    # Reject plaintext requests with 426 (TLS terminated by a proxy that sets X-Forwarded-Proto)
    require_tls: bool = False

    auto_create_schema: bool = True
    log_level: str = "INFO"

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    class Config:
        env_file = ".env"

    @property
    def sqlalchemy_url(self) -> str:
        if self.db_host:
            return (
                f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
                f"@{self.db_host}:{self.db_port}/{self.db_name}"
            )
        return self.database_url

    @property
    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return Path(__file__).resolve().parent.parent / "uploads" / "videos"


@lru_cache
def get_settings() -> Settings:
    return Settings()
