import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env() -> None:
    """Load .env from project root if present."""
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    db_path: Path = Path("data/students.db")
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    batch_size: int = 250
    window_months: int = 12
    board_limit: Optional[int] = None
    tx_retries: int = 5

    @classmethod
    def from_env(cls) -> "Settings":
        log_dir = os.getenv("STUDENTSTATS_LOG_DIR")
        return cls(
            db_path=Path(os.getenv("STUDENTSTATS_DB", "data/students.db")),
            log_level=os.getenv("STUDENTSTATS_LOG_LEVEL", "INFO"),
            log_dir=Path(log_dir) if log_dir else None,
            batch_size=_int_env("STUDENTSTATS_BATCH_SIZE", 250),
            window_months=_int_env("STUDENTSTATS_WINDOW_MONTHS", 12),
            board_limit=_int_env("STUDENTSTATS_BOARD_LIMIT", None),
            tx_retries=_int_env("STUDENTSTATS_TX_RETRIES", 5),
        )
