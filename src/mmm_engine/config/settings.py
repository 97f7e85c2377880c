"""
Configuration management for the MMM engine.
Handles environment variables, fitting grids and optimizer tuning constants.
"""
import os
from typing import Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from mmm_engine.utils.exceptions import ConfigurationError


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass
class DatabaseConfig:
    """Database configuration for SQLite or PostgreSQL."""
    url: str = "sqlite:///mmm_engine.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20


@dataclass
class FittingConfig:
    """Hill curve fitting configuration."""
    channels: Tuple[str, ...] = ("meta", "tiktok", "newsbreak")
    # Channels whose reported conversion value is trusted as platform revenue
    platform_revenue_channels: Tuple[str, ...] = ("tiktok", "newsbreak")
    window_days: int = 90
    min_observations: int = 5

    # Phase 1 (coarse) grid
    coarse_alpha_steps: int = 15
    coarse_gamma_steps: int = 15
    beta_candidates: Tuple[float, ...] = (0.3, 0.5, 0.7, 0.9, 1.0, 1.2, 1.5, 1.8, 2.0)
    alpha_min_floor: float = 0.5
    alpha_min_multiplier: float = 0.5
    alpha_max_floor: float = 10.0
    alpha_max_multiplier: float = 10.0
    gamma_min_floor: float = 100.0
    gamma_min_multiplier: float = 0.1
    gamma_max_floor: float = 10000.0
    gamma_max_multiplier: float = 5.0

    # Phase 2 (refine) grid
    refine_steps: int = 12
    refine_alpha_span: Tuple[float, float] = (0.7, 1.3)
    refine_beta_delta: float = 0.3
    refine_gamma_span: Tuple[float, float] = (0.5, 2.0)
    min_alpha: float = 0.1
    min_beta: float = 0.1
    max_beta: float = 3.0
    min_gamma: float = 10.0


@dataclass
class OptimizationConfig:
    """Greedy budget reallocation configuration."""
    min_increment: float = 50.0
    increment_fraction: float = 0.01
    max_iterations: int = 500
    convergence_tolerance: float = 0.001


@dataclass
class EfficiencyConfig:
    """Channel headroom classification thresholds."""
    current_spend_window_days: int = 7
    high_headroom_ratio: float = 0.5
    low_headroom_ratio: float = 1.5


@dataclass
class ResponseCurveConfig:
    """Response curve sampling defaults."""
    default_min_spend: float = 0.0
    default_max_spend: float = 10000.0
    default_steps: int = 50
    max_steps: int = 200


@dataclass
class ScenarioConfig:
    """Saved scenario listing configuration."""
    list_limit: int = 50


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_dir: str = "logs"
    max_file_size_mb: int = 10
    backup_count: int = 5

    # Structured logging
    use_json: bool = True
    log_file: str = field(default="mmm_engine.log")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class Settings:
    """Main application settings class."""

    def __init__(self, env: Optional[Environment] = None):
        self.env = env or Environment(os.getenv("MMM_ENV", "development"))
        self._load_environment_variables()
        self._initialize_configs()

    def _load_environment_variables(self):
        """Loads configuration from environment variables."""
        env_file = Path(".env")
        if env_file.exists():
            self._load_env_file(env_file)

    def _load_env_file(self, env_file: Path):
        """Loads environment variables from .env file."""
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ.setdefault(key.strip(), value.strip())

    def _initialize_configs(self):
        """Initializes configuration objects."""
        self.database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", "sqlite:///mmm_engine.db"),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true"
        )

        channels = os.getenv("MMM_CHANNELS", "meta,tiktok,newsbreak")
        platform_channels = os.getenv("PLATFORM_REVENUE_CHANNELS", "tiktok,newsbreak")
        self.fitting = FittingConfig(
            channels=_env_list(channels),
            platform_revenue_channels=_env_list(platform_channels),
            window_days=_env_int("FIT_WINDOW_DAYS", 90),
            min_observations=_env_int("MIN_OBSERVATIONS", 5)
        )

        self.optimization = OptimizationConfig(
            min_increment=_env_float("OPTIMIZER_MIN_INCREMENT", 50.0),
            increment_fraction=_env_float("OPTIMIZER_INCREMENT_FRACTION", 0.01),
            max_iterations=_env_int("OPTIMIZER_MAX_ITERATIONS", 500),
            convergence_tolerance=_env_float("OPTIMIZER_TOLERANCE", 0.001)
        )

        self.efficiency = EfficiencyConfig(
            current_spend_window_days=_env_int("EFFICIENCY_WINDOW_DAYS", 7)
        )

        self.response_curve = ResponseCurveConfig(
            max_steps=_env_int("CURVE_MAX_STEPS", 200)
        )

        self.scenarios = ScenarioConfig()

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=os.getenv("LOG_DIR", "logs"),
            use_json=os.getenv("USE_JSON_LOGGING", "true").lower() == "true"
        )

        if not self.fitting.channels:
            raise ConfigurationError("MMM_CHANNELS must name at least one channel")


# Global settings instance
settings = Settings()
