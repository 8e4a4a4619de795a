from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the project directory (parent of circulation package)
PROJECT_DIR = Path(__file__).parent.parent
ENV_FILE = PROJECT_DIR / ".env"

class Settings(BaseSettings):
    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Full SQLAlchemy URL; when set the db_* fields below are ignored
    database_url: Optional[str] = None

    # Database settings - confidential values from .env
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None

    # Database SSL settings
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None
    db_ssl_key: Optional[str] = None
    db_ssl_root_cert: Optional[str] = None

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # IANA name of the library's local timezone
    timezone: str = "UTC"

    # Circulation policy defaults, copied into the loan_configuration row on first read
    default_loan_days: int = 14
    max_active_loans: int = 5
    max_renewals: int = 2
    grace_period_days: int = 0
    daily_fine_amount: float = 1.00
    allow_loans_with_fines: bool = False
    max_unpaid_fines: float = 0.00
    max_overdue_loans: int = 0
    reservation_hold_days: int = 7
    reject_fine_overpayment: bool = False  # False caps payments at the fine amount

    # Librarian account created at startup when missing
    initial_librarian_email: Optional[str] = None
    initial_librarian_password: Optional[str] = None

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
