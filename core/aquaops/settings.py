"""
AquaOps Configuration Settings

Engine settings are loaded from options.json (add-on deployment) or the
``options`` section of config.yaml (development), then overridden from
environment variables / .env.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .models import FleetMetric, UnitMetric

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


@dataclass(frozen=True)
class InstrumentRange:
    """Plausible range for one probe. Readings outside are instrument faults."""

    low: float
    high: float

    def __contains__(self, value: float) -> bool:
        return self.low <= value <= self.high


DEFAULT_INSTRUMENT_RANGES: dict[str, InstrumentRange] = {
    UnitMetric.TEMPERATURE.value: InstrumentRange(-5.0, 50.0),  # °C
    UnitMetric.PH.value: InstrumentRange(0.0, 14.0),
    UnitMetric.DISSOLVED_OXYGEN.value: InstrumentRange(0.0, 25.0),  # mg/L
    UnitMetric.AMMONIA.value: InstrumentRange(0.0, 10.0),  # mg/L
    UnitMetric.SALINITY.value: InstrumentRange(0.0, 60.0),  # ppt
    FleetMetric.SOLAR_POWER.value: InstrumentRange(0.0, 500.0),  # kW
    FleetMetric.BATTERY_LEVEL.value: InstrumentRange(0.0, 100.0),  # %
    FleetMetric.BOREHOLE_FLOW.value: InstrumentRange(0.0, 5000.0),  # L/min
}


@dataclass(frozen=True)
class DemoOverlay:
    """Idealized values presented while demo mode is active."""

    health_score: int = 99
    monthly_revenue: float = 25000.0
    monthly_cost: float = 3000.0
    solar_power: float = 18.2

    @classmethod
    def from_dict(cls, data: dict) -> "DemoOverlay":
        return cls(**{_camel_to_snake(k): v for k, v in data.items()})


@dataclass
class EngineSettings:
    """Configuration for the dashboard engine."""

    seed: int = 42  # Fixture and simulator RNG seed
    history_capacity: int = 24
    advisory_delay_seconds: float = 2.0
    telemetry_enabled: bool = True
    telemetry_interval_seconds: float = 5.0
    demo: DemoOverlay = field(default_factory=DemoOverlay)
    instrument_ranges: dict[str, InstrumentRange] = field(
        default_factory=lambda: dict(DEFAULT_INSTRUMENT_RANGES)
    )

    def __post_init__(self):
        if self.history_capacity <= 0:
            raise ConfigurationError(f"history_capacity must be positive, got {self.history_capacity}")
        if self.advisory_delay_seconds < 0:
            raise ConfigurationError(
                f"advisory_delay_seconds must not be negative, got {self.advisory_delay_seconds}"
            )
        if self.telemetry_interval_seconds <= 0:
            raise ConfigurationError(
                f"telemetry_interval_seconds must be positive, got {self.telemetry_interval_seconds}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "EngineSettings":
        """Create from dictionary (camelCase or snake_case keys)."""
        converted = {_camel_to_snake(k): v for k, v in data.items()}

        if isinstance(converted.get("demo"), dict):
            converted["demo"] = DemoOverlay.from_dict(converted["demo"])

        # Partial override of the default ranges, given as [low, high] pairs
        if "instrument_ranges" in converted:
            ranges = dict(DEFAULT_INSTRUMENT_RANGES)
            for metric, bounds in converted["instrument_ranges"].items():
                try:
                    low, high = bounds
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"Invalid range for {metric}: {bounds!r}") from e
                ranges[_camel_to_snake(metric)] = InstrumentRange(float(low), float(high))
            converted["instrument_ranges"] = ranges

        try:
            return cls(**converted)
        except TypeError as e:
            raise ConfigurationError(f"Invalid engine settings: {e}") from e


def _read_options() -> dict:
    """Read the raw options dict: options.json first, config.yaml as fallback."""
    if os.path.exists(OPTIONS_PATH):
        try:
            with open(OPTIONS_PATH) as f:
                options = json.load(f)
            logger.debug("Loaded engine options from options.json")
            return options.get("engine", {})
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load {OPTIONS_PATH}: {e}")

    if os.path.exists(CONFIG_PATH):
        try:
            with open(CONFIG_PATH) as f:
                config = yaml.safe_load(f) or {}
            logger.debug("Loaded engine options from config.yaml")
            return config.get("options", {}).get("engine", {})
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config.yaml: {e}")

    return {}


def load_settings() -> EngineSettings:
    """Load engine settings from options files and environment.

    Environment overrides (also read from .env):
        AQUAOPS_SEED, AQUAOPS_ADVISORY_DELAY, AQUAOPS_TELEMETRY
    """
    options = dict(_read_options())

    load_dotenv()
    if os.getenv("AQUAOPS_SEED"):
        options["seed"] = int(os.environ["AQUAOPS_SEED"])
    if os.getenv("AQUAOPS_ADVISORY_DELAY"):
        options["advisory_delay_seconds"] = float(os.environ["AQUAOPS_ADVISORY_DELAY"])
    if os.getenv("AQUAOPS_TELEMETRY"):
        options["telemetry_enabled"] = os.environ["AQUAOPS_TELEMETRY"].lower() in ("1", "true", "yes", "on")

    settings = EngineSettings.from_dict(options)
    logger.info(
        f"Engine settings: seed={settings.seed}, advisory delay={settings.advisory_delay_seconds}s, "
        f"telemetry={'on' if settings.telemetry_enabled else 'off'}"
    )
    return settings
