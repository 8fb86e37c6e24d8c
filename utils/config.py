"""Configuration management utilities for the enforcement dashboard.

Provides:
- Config: base class with dict/JSON round-tripping
- RiskPolicy: the thresholds behind risk-tier classification
- AppConfig: application settings read from environment variables
"""

import json
import os
from pathlib import Path
from typing import Any, Dict


def _coerce(key: str, current: Any, value: Any) -> Any:
    """Convert *value* to the int or float type of *current*."""
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None
    if isinstance(current, float):
        return number
    if not number.is_integer():
        raise ValueError(f"{key} must be a whole number, got {value!r}")
    return int(number)


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all public config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    def update(self, data: Dict[str, Any]) -> None:
        """Overwrite settings from *data*.

        Keys that are not attributes of this instance are ignored, so an old or
        hand-edited file cannot inject unknown settings.  Values are coerced
        to the type of the current setting when that is a number, so a JSON
        file may write ``"1.5"`` as well as ``1.5``.

        Raises:
            ValueError: If a value cannot be read as the setting's number type.
        """
        for key, value in data.items():
            if key.startswith("_") or key not in vars(self):
                continue
            setattr(self, key, _coerce(key, getattr(self, key), value))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary (see :meth:`update`)."""
        config = cls()
        config.update(data)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to a JSON file, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


class RiskPolicy(Config):
    """Thresholds used by ``OffenderStatsEngine.rank_risk``.

    An offender is high risk only when all three signals fire: cases from at
    least ``min_agencies`` distinct agencies, an escalating fine trend, and
    an action within the last ``recent_window_days``.

    Escalation compares fined cases in date order: with at least
    ``min_escalation_cases`` of them, the latest fine must exceed the
    earliest fine times ``escalation_factor``.

    Environment variables:
        RISK_RECENT_WINDOW_DAYS: Recent-activity window (default: 365)
        RISK_MIN_AGENCIES: Distinct agencies for the multi-agency signal (default: 2)
        RISK_ESCALATION_FACTOR: Latest/earliest fine ratio to beat (default: 1.0)
        RISK_MIN_ESCALATION_CASES: Fined cases needed to judge a trend (default: 2)
        RISK_MULTIPLE_VIOLATIONS: Cases+notices to exceed for "Multiple violations" (default: 5)
        RISK_POLICY_FILE: Optional JSON file.  Settings it names override both
            the defaults and the RISK_* variables; settings it omits keep
            their environment or default value.

    The recent window is exclusive: an action exactly
    ``recent_window_days`` ago is no longer recent.  "Multiple violations"
    is reported when cases plus notices exceed ``multiple_violations``.
    """

    _ENV_VARS = {
        "recent_window_days": "RISK_RECENT_WINDOW_DAYS",
        "min_agencies": "RISK_MIN_AGENCIES",
        "escalation_factor": "RISK_ESCALATION_FACTOR",
        "min_escalation_cases": "RISK_MIN_ESCALATION_CASES",
        "multiple_violations": "RISK_MULTIPLE_VIOLATIONS",
    }

    def __init__(self) -> None:
        super().__init__()
        self.recent_window_days = 365
        self.min_agencies = 2
        self.escalation_factor = 1.0
        self.min_escalation_cases = 2
        self.multiple_violations = 5

    @classmethod
    def from_env(cls) -> "RiskPolicy":
        """Defaults, then RISK_* variables, then RISK_POLICY_FILE.

        Raises:
            ValueError: If a value is not a number or fails :meth:`validate`.
            FileNotFoundError: If RISK_POLICY_FILE names a missing file.
        """
        policy = cls()
        policy.update({
            attr: os.environ[var]
            for attr, var in cls._ENV_VARS.items() if var in os.environ
        })
        policy_file = os.getenv("RISK_POLICY_FILE")
        if policy_file:
            with open(policy_file, "r") as f:
                policy.update(json.load(f))
        policy.validate()
        return policy

    def validate(self) -> None:
        """Reject thresholds that would make the tiers meaningless.

        Raises:
            ValueError: On a negative window, fewer than one agency, a
                negative factor, or fewer than two cases for a trend.
        """
        if self.recent_window_days < 0:
            raise ValueError("recent_window_days must be >= 0")
        if self.min_agencies < 1:
            raise ValueError("min_agencies must be >= 1")
        if self.escalation_factor < 0:
            raise ValueError("escalation_factor must be >= 0")
        if self.min_escalation_cases < 2:
            raise ValueError("min_escalation_cases must be >= 2")


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have defaults so the application works out of the box.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: enforcement.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        APP_PAGE_SIZE: Default offenders per page (default: 20)
        APP_SUMMARY_CACHE_TTL: Seconds to cache the dashboard summary (default: 60)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(os.getenv("APP_DB_PATH", "enforcement.sqlite"))
        self.api_port = int(os.getenv("APP_PORT", "8000"))
        self.api_host = os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.page_size = int(os.getenv("APP_PAGE_SIZE", "20"))
        self.summary_cache_ttl = float(os.getenv("APP_SUMMARY_CACHE_TTL", "60"))

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
