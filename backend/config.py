"""
Compliance Reading Engine - System Configuration
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Blocking policy flags for untested assets and expired
                      calibrations; demo seed toggle
v1.0.0 (2026-10-05): Initial configuration module
"""

from pydantic_settings import BaseSettings
from pathlib import Path
import os


class Settings(BaseSettings):
    """System-wide configuration"""

    # Application
    APP_NAME: str = "Compliance Reading Engine"
    APP_VERSION: str = "1.1.0"
    DEBUG: bool = False

    # API Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_WORKERS: int = 1

    # SQLite Configuration
    SQLITE_DB_PATH: str = str(Path(__file__).parent / "data" / "compliance.db")
    SQLITE_BUSY_TIMEOUT: float = 5.0  # Seconds a writer waits for the lock

    # File Paths
    DATA_DIR: str = str(Path(__file__).parent / "data")
    LOGS_DIR: str = str(Path(__file__).parent / "data" / "logs")

    # Submission policy (advisory unless enabled)
    FORMS_BLOCK_UNTESTED_ASSETS: bool = False
    FORMS_BLOCK_EXPIRED_CALIBRATION: bool = False

    # Calibration Tracking
    CALIBRATION_WARNING_DAYS: int = 30  # Days before expiry warning

    # Demo data
    SEED_DEMO_DATA: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Singleton instance
settings = Settings()


# Create required directories
def init_directories():
    """Create necessary directories if they don't exist"""
    for directory in [settings.DATA_DIR, settings.LOGS_DIR]:
        os.makedirs(directory, exist_ok=True)


if __name__ == "__main__":
    print(f"{settings.APP_NAME} Configuration v{settings.APP_VERSION}")
    print(f"SQLite: {settings.SQLITE_DB_PATH}")
    print(f"Block untested assets: {settings.FORMS_BLOCK_UNTESTED_ASSETS}")
    print(f"Block expired calibration: {settings.FORMS_BLOCK_EXPIRED_CALIBRATION}")
    print(f"Calibration warning window: {settings.CALIBRATION_WARNING_DAYS} days")
