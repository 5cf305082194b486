from typing import List

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Strava API
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    REDIRECT_URI: str = "http://localhost:8000/strava/callback"
    STRAVA_API_BASE_URL: str = "https://www.strava.com/api/v3"
    STRAVA_OAUTH_URL: str = "https://www.strava.com/oauth"
    STRAVA_SCOPE: str = "read,activity:read_all"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    TOKEN_EXPIRY_BUFFER_SECONDS: int = 300

    # Outbound safety limits (80% of Strava's 100/15m and 1000/day)
    RATE_LIMIT_15_MIN: int = 80
    RATE_LIMIT_DAILY: int = 800

    # Runtime
    ENVIRONMENT: str = "development"  # development, production, test
    LOG_LEVEL: str = ""
    ALLOWED_ORIGINS: List[str] = ["http://localhost:8000", "http://127.0.0.1:8000"]
    STATIC_DIR: str = "public"

    # Security
    SECRET_KEY: str = "change_this_to_a_secure_random_key_in_production"
    ALGORITHM: str = "HS256"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30  # 30 days

    # Dashboard windows
    ACTIVITY_FETCH_LIMIT: int = 10
    RECENT_WINDOW: int = 5
    TOP_KUDOERS: int = 10

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "INFO" if self.ENVIRONMENT == "development" else "WARNING"

settings = Settings()
