from dotenv import load_dotenv
from functools import lru_cache
from typing import List, Optional
import os

# Load environment variables
load_dotenv()


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration read from the environment (.env supported)."""

    def __init__(self):
        self.mongodb_url = os.getenv('MONGODB_URL')
        self.database_name = os.getenv('DATABASE_NAME', 'salon_db')

        self.jwt_secret = os.getenv('JWT_SECRET', 'change-me-in-production')
        self.jwt_algorithm = os.getenv('JWT_ALGORITHM', 'HS256')
        self.access_token_minutes = int(os.getenv('ACCESS_TOKEN_MINUTES', '30'))
        self.refresh_token_days = int(os.getenv('REFRESH_TOKEN_DAYS', '7'))
        self.password_reset_minutes = int(os.getenv('PASSWORD_RESET_MINUTES', '60'))
        self.cookie_secure = _as_bool(os.getenv('COOKIE_SECURE'), False)

        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
            if origin.strip()
        ]
        self.csrf_enabled = _as_bool(os.getenv('CSRF_ENABLED'), True)
        self.rate_limit_enabled = _as_bool(os.getenv('RATE_LIMIT_ENABLED'), True)

        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.log_file = os.getenv('LOG_FILE')

        self.twilio_account_sid = os.getenv('TWILIO_ACCOUNT_SID')
        self.twilio_auth_token = os.getenv('TWILIO_AUTH_TOKEN')
        self.twilio_from_number = os.getenv('TWILIO_FROM_NUMBER')

        self.port = int(os.getenv('PORT', '10000'))

    @property
    def twilio_enabled(self) -> bool:
        return all([self.twilio_account_sid, self.twilio_auth_token, self.twilio_from_number])


@lru_cache()
def get_settings() -> Settings:
    return Settings()
