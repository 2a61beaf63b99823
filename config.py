import logging
import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_path: Path,
        log_level: str,
        host: str,
        port: int,
    ) -> None:
        self.database_path = database_path
        self.log_level = log_level
        self.host = host
        self.port = port


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("HOMEBUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    explicit_path = os.getenv("HOMEBUDGET_DATABASE_PATH")
    if explicit_path:
        database_path = Path(explicit_path).resolve()
    else:
        database_path = _ensure_data_dir() / "homebudget.db"
    log_level = os.getenv("HOMEBUDGET_LOG_LEVEL", "INFO")
    host = os.getenv("HOMEBUDGET_HOST", "127.0.0.1")
    port = int(os.getenv("HOMEBUDGET_PORT", "8000"))
    return Settings(
        database_path=database_path,
        log_level=log_level,
        host=host,
        port=port,
    )


def get_log_level() -> int:
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(get_settings().log_level.upper(), logging.INFO)
