"""
gungnr-jobs - Client Configuration
Loads environment variables from .env and exposes them as typed settings.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Walk up from this file to find .env at any ancestor directory
_here = Path(__file__).resolve()
for _parent in [_here.parent, *_here.parents]:
    _candidate = _parent / ".env"
    if _candidate.exists():
        load_dotenv(_candidate, override=False)
        break


class Settings:
    # Job API
    API_BASE_URL: str = os.getenv("GUNGNR_API_BASE_URL", "http://localhost:8080/api/v1")
    API_TIMEOUT_S: float = float(os.getenv("GUNGNR_API_TIMEOUT_S", "15"))
    API_TOKEN: str = os.getenv("GUNGNR_API_TOKEN", "")
    SESSION_COOKIE: str = os.getenv("GUNGNR_SESSION_COOKIE", "")
    SESSION_COOKIE_NAME: str = os.getenv("GUNGNR_SESSION_COOKIE_NAME", "gungnr_session")

    # Origin the host worker is told to call back into
    PANEL_ORIGIN: str = os.getenv("GUNGNR_PANEL_ORIGIN", "http://localhost")

    # Jobs view
    JOBS_PAGE_SIZE: int = int(os.getenv("GUNGNR_JOBS_PAGE_SIZE", "25"))
    JOB_POLL_INTERVAL_S: float = float(os.getenv("GUNGNR_JOB_POLL_INTERVAL_S", "3.0"))

    # Application
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def authenticated(self) -> bool:
        """True when either a bearer token or a session cookie is configured."""
        return bool(self.API_TOKEN or self.SESSION_COOKIE)

    @property
    def cookies(self) -> dict[str, str]:
        if not self.SESSION_COOKIE:
            return {}
        return {self.SESSION_COOKIE_NAME: self.SESSION_COOKIE}


settings = Settings()
