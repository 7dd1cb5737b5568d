"""
AquaOps Data Models

Units, health statuses, advisory messages and the frozen snapshots handed
to readers. Mutable state (``Unit``) never leaves the store; readers only
ever see the ``*Snapshot`` types.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from .ring_buffer import HISTORY_CAPACITY, RingBuffer


def now_utc() -> datetime:
    """Get current time as timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class ConnectionStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    SYNCING = "syncing"


class UnitMetric(str, Enum):
    """Per-unit water quality readings."""

    TEMPERATURE = "temperature"
    PH = "ph"
    DISSOLVED_OXYGEN = "dissolved_oxygen"
    AMMONIA = "ammonia"
    SALINITY = "salinity"


class FleetMetric(str, Enum):
    """Farm-wide utility readings."""

    SOLAR_POWER = "solar_power"
    BATTERY_LEVEL = "battery_level"
    BOREHOLE_FLOW = "borehole_flow"


# --- Health status (closed union) ---

@dataclass(frozen=True)
class OptimalStatus:
    label = "optimal"


@dataclass(frozen=True)
class WarningStatus:
    reason: str
    label = "warning"


@dataclass(frozen=True)
class CriticalStatus:
    reason: str
    label = "critical"


@dataclass(frozen=True)
class AnalyzingStatus:
    """Re-evaluation pending in the advisory pipeline."""

    label = "analyzing"


AiStatus = Union[OptimalStatus, WarningStatus, CriticalStatus, AnalyzingStatus]


# --- Units ---

@dataclass
class Unit:
    """A monitored pond, raceway or tank. Lives inside the store only."""

    id: str
    name: str
    species: str
    temperature: float
    ph: float
    dissolved_oxygen: float
    ammonia: float
    salinity: float
    last_update: datetime = field(default_factory=now_utc)
    connection_status: ConnectionStatus = ConnectionStatus.ONLINE
    ai_status: AiStatus = field(default_factory=OptimalStatus)
    history_capacity: int = HISTORY_CAPACITY  # size of windows created here
    temperature_history: RingBuffer | None = None
    ph_history: RingBuffer | None = None
    oxygen_history: RingBuffer | None = None

    # Inventory
    sensor_count: int = 3
    pump_count: int = 1
    feeder_status: str = "Auto"

    def __post_init__(self):
        # An unseeded window starts flat at the current reading so it is never short
        for name, metric in (
            ("temperature_history", UnitMetric.TEMPERATURE),
            ("ph_history", UnitMetric.PH),
            ("oxygen_history", UnitMetric.DISSOLVED_OXYGEN),
        ):
            buffer = getattr(self, name)
            if buffer is None or len(buffer) == 0:
                capacity = self.history_capacity if buffer is None else buffer.capacity
                setattr(self, name, RingBuffer(capacity, [getattr(self, metric.value)] * capacity))

    def histories(self) -> dict[UnitMetric, RingBuffer]:
        return {
            UnitMetric.TEMPERATURE: self.temperature_history,
            UnitMetric.PH: self.ph_history,
            UnitMetric.DISSOLVED_OXYGEN: self.oxygen_history,
        }

    def snapshot(self) -> "UnitSnapshot":
        return UnitSnapshot(
            id=self.id,
            name=self.name,
            species=self.species,
            temperature=self.temperature,
            ph=self.ph,
            dissolved_oxygen=self.dissolved_oxygen,
            ammonia=self.ammonia,
            salinity=self.salinity,
            last_update=self.last_update,
            connection_status=self.connection_status,
            ai_status=self.ai_status,
            temperature_history=self.temperature_history.to_sequence(),
            ph_history=self.ph_history.to_sequence(),
            oxygen_history=self.oxygen_history.to_sequence(),
            sensor_count=self.sensor_count,
            pump_count=self.pump_count,
            feeder_status=self.feeder_status,
        )


@dataclass(frozen=True)
class UnitSnapshot:
    """Read-only copy of a unit at one point in time."""

    id: str
    name: str
    species: str
    temperature: float
    ph: float
    dissolved_oxygen: float
    ammonia: float
    salinity: float
    last_update: datetime
    connection_status: ConnectionStatus
    ai_status: AiStatus
    temperature_history: tuple[float, ...]
    ph_history: tuple[float, ...]
    oxygen_history: tuple[float, ...]
    sensor_count: int
    pump_count: int
    feeder_status: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_update"] = self.last_update.isoformat()
        data["connection_status"] = self.connection_status.value
        data["ai_status"] = {
            "state": self.ai_status.label,
            "reason": getattr(self.ai_status, "reason", None),
        }
        for key in ("temperature_history", "ph_history", "oxygen_history"):
            data[key] = list(data[key])
        return data


# --- Advisory messages ---

@dataclass(frozen=True)
class AdvisoryMessage:
    """One entry of the append-only advisory log."""

    text: str
    is_user: bool
    is_system_event: bool = False
    reasoning: str | None = None
    timestamp: datetime = field(default_factory=now_utc)
    sequence: int = 0  # insertion order, breaks timestamp ties
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


# --- Fleet ---

@dataclass(frozen=True)
class FleetSnapshot:
    """Deep, immutable copy of the whole fleet state."""

    units: tuple[UnitSnapshot, ...]
    health_score: int
    solar_power: float
    battery_level: float
    borehole_flow: float
    monthly_revenue: float
    monthly_cost: float
    auto_manage_all: bool
    solar_history: tuple[float, ...] = ()
    battery_history: tuple[float, ...] = ()
    borehole_history: tuple[float, ...] = ()
    demo_active: bool = False
    advisory_thinking: bool = False
    taken_at: datetime = field(default_factory=now_utc)

    def unit(self, unit_id: str) -> UnitSnapshot | None:
        return next((u for u in self.units if u.id == unit_id), None)


@dataclass(frozen=True)
class FleetSummary:
    """Fleet-wide figures shown on the dashboard header and telemetry grid."""

    avg_temperature: float
    avg_ph: float
    avg_dissolved_oxygen: float
    health_score: int
    solar_power: float
    battery_level: float
    borehole_flow: float
    monthly_revenue: float
    monthly_cost: float
    net_margin: float
    status_counts: dict[str, int]
    online_units: int
    total_units: int
    auto_manage_all: bool
    demo_active: bool
    advisory_thinking: bool

    def to_dict(self) -> dict:
        return asdict(self)


class ChangeKind(str, Enum):
    READING = "reading"
    UNIT = "unit"
    FLEET = "fleet"
    MODE = "mode"
    ADVISORY_MESSAGE = "advisory_message"
    THINKING = "thinking"


@dataclass(frozen=True)
class StateChange:
    """Notification pushed to store subscribers after every write."""

    kind: ChangeKind
    unit_id: str | None = None
    message: AdvisoryMessage | None = None
    timestamp: datetime = field(default_factory=now_utc)
