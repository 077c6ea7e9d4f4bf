import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        indefinite_window: int,
        log_level: str,
        default_user_id: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.indefinite_window = indefinite_window
        self.log_level = log_level
        self.default_user_id = default_user_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "America/Argentina/Buenos_Aires")
    indefinite_window = int(os.getenv("BUDGET_INDEFINITE_WINDOW", "60"))
    if indefinite_window <= 0:
        raise ValueError("BUDGET_INDEFINITE_WINDOW must be positive")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    default_user_id = int(os.getenv("BUDGET_DEFAULT_USER_ID", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        indefinite_window=indefinite_window,
        log_level=log_level,
        default_user_id=default_user_id,
    )
