from __future__ import annotations

from dataclasses import dataclass, field

from .errors import ConfigError
from .models import FeatureConfig

DISCIPLINES = ("locked", "channel")


@dataclass
class PoolConfig:
    workers: int = 4
    discipline: str = "locked"  # locked | channel
    grace_period_s: float = 5.0
    poll_interval_s: float = 0.1


@dataclass
class FeaturesConfig:
    one_hot_tier: bool = True
    dot_ratio: bool = True
    entropy_features: bool = False

    def to_feature_config(self) -> FeatureConfig:
        return FeatureConfig(
            one_hot_tier=bool(self.one_hot_tier),
            dot_ratio=bool(self.dot_ratio),
            entropy_features=bool(self.entropy_features),
        )


@dataclass
class FetchConfig:
    timeout_s: float = 30.0
    retries: int = 2
    retry_backoff_s: float = 1.0
    api_base: str = "https://api.beatsaver.com"
    user_agent: str = "beatmap-features/0.3"
    characteristic: str = "Standard"


@dataclass
class IOConfig:
    flush_every: int = 0  # rows between flushes; 0 flushes only at the end
    delimiter: str = ","


@dataclass
class ErrorPolicyConfig:
    fail_on_item_error: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    events_dir: str = ""  # empty disables the JSONL event log


@dataclass
class ExtractionConfig:
    pool: PoolConfig = field(default_factory=PoolConfig)
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    io: IOConfig = field(default_factory=IOConfig)
    errors: ErrorPolicyConfig = field(default_factory=ErrorPolicyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_config(config: ExtractionConfig) -> ExtractionConfig:
    """Reject values the pipeline cannot run with."""
    try:
        workers = int(config.pool.workers)
    except (TypeError, ValueError, OverflowError):
        raise ConfigError(f"pool.workers must be an integer, got {config.pool.workers!r}") from None
    if isinstance(config.pool.workers, bool) or workers < 1 or workers != config.pool.workers:
        raise ConfigError(f"pool.workers must be an integer >= 1, got {config.pool.workers!r}")
    config.pool.workers = workers
    if config.pool.discipline not in DISCIPLINES:
        raise ConfigError(
            f"pool.discipline must be one of {', '.join(DISCIPLINES)}, got {config.pool.discipline!r}"
        )
    for dotted, value in (
        ("pool.grace_period_s", config.pool.grace_period_s),
        ("pool.poll_interval_s", config.pool.poll_interval_s),
        ("fetch.timeout_s", config.fetch.timeout_s),
        ("fetch.retry_backoff_s", config.fetch.retry_backoff_s),
    ):
        if not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"{dotted} must be a non-negative number, got {value!r}")
    if config.pool.poll_interval_s == 0:
        raise ConfigError("pool.poll_interval_s must be > 0")
    for dotted, value in (("fetch.retries", config.fetch.retries), ("io.flush_every", config.io.flush_every)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f"{dotted} must be a non-negative integer, got {value!r}")
    if len(config.io.delimiter) != 1:
        raise ConfigError(f"io.delimiter must be a single character, got {config.io.delimiter!r}")
    return config
