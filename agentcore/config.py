"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from .models.queue import BackoffOptions, JobOptions, RedisConnectionConfig, TaskQueueConfig

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DEFAULT_DB_PATH = DATA_DIR / "agentcore.db"
DEFAULT_LOG_PATH = LOGS_DIR / "agentcore.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _retention(value: str) -> bool | int:
    lowered = value.strip().lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    return int(lowered)


@dataclass
class Settings:
    """Runtime settings, read from the environment by load_settings()."""

    db_path: PathLike = DEFAULT_DB_PATH
    log_level: str = "INFO"
    max_concurrent_executions: int = 10
    queue_name: str = "agent-tasks"
    queue: TaskQueueConfig = field(default_factory=TaskQueueConfig)
    anthropic_api_key: str | None = None


def load_settings() -> Settings:
    """Build Settings from environment variables (call load_dotenv() first)."""
    redis = RedisConnectionConfig(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        password=os.getenv("REDIS_PASSWORD") or None,
        db=int(os.getenv("REDIS_DB", "0")),
    )
    job_options = JobOptions(
        attempts=int(os.getenv("QUEUE_ATTEMPTS", "3")),
        backoff=BackoffOptions(
            type=os.getenv("QUEUE_BACKOFF_TYPE", "exponential"),
            delay=int(os.getenv("QUEUE_BACKOFF_DELAY_MS", "1000")),
        ),
        remove_on_complete=_retention(os.getenv("QUEUE_REMOVE_ON_COMPLETE", "100")),
        remove_on_fail=_retention(os.getenv("QUEUE_REMOVE_ON_FAIL", "50")),
    )
    return Settings(
        db_path=resolve_db_path(os.getenv("DATABASE_URL")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        max_concurrent_executions=int(os.getenv("MAX_CONCURRENT_EXECUTIONS", "10")),
        queue_name=os.getenv("QUEUE_NAME", "agent-tasks"),
        queue=TaskQueueConfig(
            redis=redis,
            default_job_options=job_options,
            concurrency=int(os.getenv("QUEUE_CONCURRENCY", "10")),
        ),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
    )
