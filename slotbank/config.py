"""
Configuration module for the slotbank ledger.

Contains constants, settings, and configuration values used throughout the application.
Values that can be overridden from the environment are read through the getters
at call time, so a ``.env`` loaded after import still takes effect.
"""

import logging
import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"

# Database configuration
DEFAULT_DB_PATH = DATA_DIR / "slotbank.db"
DB_TIMEOUT = 10.0  # seconds
BACKEND_KINDS = ("native", "memory")
DEFAULT_BACKEND = "native"

# Marks images written by the memory backend ("SLOT")
SQLITE_APPLICATION_ID = 0x534C4F54

# Concurrency
DEFAULT_LOCK_TIMEOUT = 10.0  # seconds

# Money
CURRENCY_SYMBOL = "R$"
MINOR_UNITS = 100  # cents per unit
MAX_AMOUNT = Decimal("999999999.99")

# Database query limits
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500

# Export configuration
MAX_EXPORT_ENTRIES = 10000

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "slotbank.log"

# User input limits
MAX_ACCOUNT_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 200

# Error messages
ERROR_MESSAGES = {
    "not_initialized": "The wallet is not ready yet. Please restart the app.",
    "init_failed": "Could not open the wallet storage.",
    "email_taken": "This email is already registered.",
    "account_not_found": "Account not found. Please sign in again.",
    "insufficient_funds": "Insufficient balance for this operation.",
    "invalid_amount": "Invalid amount. Please check the value and try again.",
    "invalid_input": "Invalid input. Please check your values and try again.",
    "lock_timeout": "The wallet is busy. Please try again in a moment.",
    "storage_io": "Storage error occurred. Please try again later.",
    "internal_error": "An internal error occurred. Please try again.",
}


def load_environment(env_path=None) -> bool:
    """Load a .env file if present. Returns True when one was loaded."""
    env_path = Path(env_path) if env_path else PROJECT_ROOT / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(env_path)


def ensure_directories():
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_backend_kind() -> str:
    """Get the configured storage backend kind."""
    kind = os.getenv("SLOTBANK_BACKEND", DEFAULT_BACKEND).strip().lower()
    if kind not in BACKEND_KINDS:
        raise ValueError(
            f"Unknown SLOTBANK_BACKEND {kind!r}, expected one of {BACKEND_KINDS}"
        )
    return kind


def get_db_path() -> Path:
    """Get the configured database (or memory image) path."""
    value = os.getenv("SLOTBANK_DB_PATH")
    return Path(value) if value else DEFAULT_DB_PATH


def get_lock_timeout() -> float:
    """Get the per-account lock timeout in seconds."""
    value = os.getenv("SLOTBANK_LOCK_TIMEOUT")
    if not value:
        return DEFAULT_LOCK_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        raise ValueError(f"Invalid SLOTBANK_LOCK_TIMEOUT: {value!r}") from None
    if timeout <= 0:
        raise ValueError(f"SLOTBANK_LOCK_TIMEOUT must be positive, got {timeout}")
    return timeout


def get_log_level():
    """Get the configured log level."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
