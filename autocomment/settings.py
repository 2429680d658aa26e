from pydantic import BaseModel
import os
from typing import List
from dotenv import load_dotenv

# Load .env if present at project root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
env_path = os.path.join(ROOT, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

REQUIRED = ("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URL", "SESSION_SECRET", "YOUTUBE_API_KEY", "DATABASE_URL")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    CLIENT_ID: str = os.getenv("CLIENT_ID", "")
    CLIENT_SECRET: str = os.getenv("CLIENT_SECRET", "")
    REDIRECT_URL: str = os.getenv("REDIRECT_URL", "")
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "")
    YOUTUBE_API_KEY: str = os.getenv("YOUTUBE_API_KEY", "")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    SESSION_TTL: int = int(os.getenv("SESSION_TTL", str(7 * 24 * 60 * 60)))
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "20"))
    POLL_CONTINUE_ON_POST_ERROR: bool = _env_bool("POLL_CONTINUE_ON_POST_ERROR")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def missing(self) -> List[str]:
        return [name for name in REQUIRED if not getattr(self, name)]

    def ensure_complete(self) -> None:
        missing = self.missing()
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


settings = Settings()
