from pydantic_settings import BaseSettings
from typing import List, Any
import json


def parse_csv_list(v: Any) -> List[str]:
    """Parse a list setting from a JSON array or comma-separated string"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [item.strip() for item in v.split(',') if item.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "CampusPerks"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./campusperks.db"
    DB_ECHO: bool = False

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days, matches login session expiry
    BCRYPT_ROUNDS: int = 12  # 4 for dev (fast), 12 for prod (secure)
    LOGIN_SESSION_DAYS: int = 7

    # Roles whose accounts must be approved before they may log in
    LOGIN_REQUIRES_APPROVAL_ROLES_STR: str = ""

    @property
    def LOGIN_REQUIRES_APPROVAL_ROLES(self) -> List[str]:
        return parse_csv_list(self.LOGIN_REQUIRES_APPROVAL_ROLES_STR)

    # ==========================================
    # Account lifecycle
    # ==========================================
    # When true, approve-account(approved) is refused until documents are verified
    APPROVAL_REQUIRES_VERIFICATION: bool = False

    # ==========================================
    # CORS / socket handshake origin
    # ==========================================
    CORS_ORIGIN: str = "http://localhost:5173"
    CORS_ORIGINS_STR: str = ""

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Base origin plus any extra origins from CORS_ORIGINS_STR"""
        origins = [self.CORS_ORIGIN] if self.CORS_ORIGIN else []
        for origin in parse_csv_list(self.CORS_ORIGINS_STR):
            if origin not in origins:
                origins.append(origin)
        return origins

    # ==========================================
    # Realtime
    # ==========================================
    REALTIME_QUEUE_SIZE: int = 100  # per-connection outbound buffer
    REALTIME_HEARTBEAT_SECONDS: float = 30.0

    # ==========================================
    # Notifications
    # ==========================================
    NOTIFICATION_RETENTION_DAYS: int = 30
    NOTIFICATION_PURGE_INTERVAL_MINUTES: int = 60

    # ==========================================
    # File storage (S3 or S3-compatible, e.g. MinIO)
    # ==========================================
    STORAGE_BUCKET: str = "campusperks-documents"
    STORAGE_ENDPOINT_URL: str = ""  # Empty means AWS S3
    STORAGE_PUBLIC_BASE_URL: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"

    MAX_UPLOAD_SIZE: int = 10485760  # 10MB
    ALLOWED_DOCUMENT_TYPES_STR: str = (
        "student_id,enrollment_letter,transcript,business_license,aadhar,pan,passport,other"
    )

    @property
    def ALLOWED_DOCUMENT_TYPES(self) -> List[str]:
        return parse_csv_list(self.ALLOWED_DOCUMENT_TYPES_STR)

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Create settings instance
settings = Settings()
