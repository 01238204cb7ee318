from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

NAMESPACE = "smartthings"
DEVICE_LABELS: Tuple[str, str] = ("device_id", "device_name")

KWH_TO_JOULES = 3600000.0


@dataclass(frozen=True)
class Empty:
    def __str__(self) -> str:
        return ""


@dataclass(frozen=True)
class Number:
    value: float

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class Text:
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Opaque:
    value: Any

    def __str__(self) -> str:
        return repr(self.value)


RawValue = Union[Empty, Number, Text, Opaque]

EMPTY = Empty()


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def raw_value(x: Any) -> RawValue:
    """Normalize a value as decoded from the upstream JSON payload.

    Absent values and the empty string are both ``Empty``; booleans, objects
    and lists end up ``Opaque`` so every mapper rejects them.
    """
    if isinstance(x, (Empty, Number, Text, Opaque)):
        return x
    if x is None or x == "":
        return EMPTY
    if _is_number(x):
        return Number(float(x))
    if isinstance(x, str):
        return Text(x)
    return Opaque(x)


class ConversionError(ValueError):
    def __init__(self, message: str, raw: RawValue, attribute: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw
        self.attribute = attribute


class TypeMismatch(ConversionError):
    pass


class UnrecognizedOption(ConversionError):
    def __init__(self, raw: RawValue, options: Tuple[str, str], attribute: Optional[str] = None) -> None:
        super().__init__(
            f"invalid option {str(raw)!r}. Expected {options[0]!r} or {options[1]!r}",
            raw,
            attribute,
        )
        self.options = options


class ValueMapper:
    def __call__(self, raw: RawValue) -> float:
        raise NotImplementedError


@dataclass(frozen=True)
class FloatMapper(ValueMapper):
    def __call__(self, raw: RawValue) -> float:
        if isinstance(raw, Empty):
            return 0.0
        if isinstance(raw, Number):
            return raw.value
        raise TypeMismatch(f"invalid non floating-point argument {raw}", raw)


@dataclass(frozen=True)
class ScaledFloatMapper(ValueMapper):
    factor: float

    def __call__(self, raw: RawValue) -> float:
        return FloatMapper()(raw) * self.factor


@dataclass(frozen=True)
class ClearMapper(ValueMapper):
    """0 for "clear", 1 for any other string, including an absent value."""

    def __call__(self, raw: RawValue) -> float:
        if isinstance(raw, Empty):
            return 1.0
        if not isinstance(raw, Text):
            raise TypeMismatch(f"invalid non-string argument {raw}", raw)
        return 0.0 if raw.value == "clear" else 1.0


@dataclass(frozen=True)
class EnumeratedPairMapper(ValueMapper):
    low: str
    high: str

    @property
    def options(self) -> Tuple[str, str]:
        return (self.low, self.high)

    def __call__(self, raw: RawValue) -> float:
        if isinstance(raw, Empty):
            raise UnrecognizedOption(raw, self.options)
        if not isinstance(raw, Text):
            raise TypeMismatch(f"invalid non-string argument {raw}", raw)
        if raw.value == self.low:
            return 0.0
        if raw.value == self.high:
            return 1.0
        raise UnrecognizedOption(raw, self.options)


@dataclass(frozen=True)
class MetricSpec:
    name: str
    documentation: str
    mapper: ValueMapper = field(compare=False)
    labels: Tuple[str, ...] = DEVICE_LABELS

    @property
    def fqname(self) -> str:
        return f"{NAMESPACE}_{self.name}"


@dataclass(frozen=True)
class Dropped:
    attribute: str


@dataclass(frozen=True)
class Unknown:
    attribute: str


@dataclass(frozen=True)
class Converted:
    attribute: str
    metric: MetricSpec
    value: float

    @property
    def metric_name(self) -> str:
        return self.metric.name


@dataclass(frozen=True)
class Invalid:
    attribute: str
    error: ConversionError


Outcome = Union[Dropped, Unknown, Converted, Invalid]


class MetricRegistry:
    """Immutable attribute to metric table plus the set of attributes to drop.

    Several attributes may share one metric name; an attribute listed in both
    tables is always dropped.
    """

    __slots__ = ("_metrics", "_drop")

    def __init__(self, metrics: Mapping[str, MetricSpec], drop: Iterable[str] = ()) -> None:
        object.__setattr__(self, "_metrics", MappingProxyType(dict(metrics)))
        object.__setattr__(self, "_drop", frozenset(drop))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("MetricRegistry is immutable")

    @property
    def metrics(self) -> Mapping[str, MetricSpec]:
        return self._metrics

    @property
    def drop(self) -> FrozenSet[str]:
        return self._drop

    def is_dropped(self, attribute: str) -> bool:
        return attribute in self._drop

    def lookup(self, attribute: str) -> Optional[MetricSpec]:
        return self._metrics.get(attribute)

    def classify(self, attribute: str, raw: Any) -> Outcome:
        if attribute in self._drop:
            return Dropped(attribute)

        spec = self._metrics.get(attribute)
        if spec is None:
            return Unknown(attribute)

        rv = raw_value(raw)
        try:
            value = spec.mapper(rv)
        except ConversionError as e:
            e.attribute = attribute
            return Invalid(attribute, e)
        return Converted(attribute, spec, float(value))

    def describe(self) -> List[MetricSpec]:
        """One spec per distinct metric name, in registration order."""
        seen = set()
        out: List[MetricSpec] = []
        for spec in self._metrics.values():
            if spec.name in seen:
                continue
            seen.add(spec.name)
            out.append(spec)
        return out


OPEN_CLOSED = EnumeratedPairMapper("open", "closed")
LOCKED_UNLOCKED = EnumeratedPairMapper("locked", "unlocked")
INACTIVE_ACTIVE = EnumeratedPairMapper("inactive", "active")
ABSENT_PRESENT = EnumeratedPairMapper("not present", "present")
OFF_ON = EnumeratedPairMapper("off", "on")

DEFAULT_DROP: FrozenSet[str] = frozenset(
    [
        "DeviceWatch-DeviceStatus",
        "DeviceWatch-Enroll",
        "numberOfButtons",
        "color",
        "colorName",
        "button",
        "indicatorStatus",
        "supportedButtonValues",
        "bulbTemp",
        "status",
        "threeAxis",
        "acceleration",
        "door",
        # Rachio controller
        "curZoneIsCycling",
        "curZoneCycleCount",
        "controllerOn",
        "rainDelay",
        "curZoneNumber",
        "curZoneWaterTime",
        "rainDelayStr",
        "hardwareModel",
        "hardwareDesc",
        "activeZoneCnt",
        "curZoneRunStatus",
        "standbyMode",
        "curZoneName",
        "curZoneDuration",
        "curZoneStartDate",
        # Rachio valves
        "zoneSquareFeet",
        "efficiency",
        "indicashadeNametorStatus",
        "zoneName",
        "saturatedDepthOfWater",
        "zoneNumber",
        "watering",
        "zoneTotalDuration",
        "rootZoneDepth",
        "zoneWaterTime",
        "depthOfWater",
        "zoneElapsed",
        "slopeName",
        "cropName",
        "availableWater",
        "nozzleName",
        "maxRuntime",
        "zoneDuration",
        "zoneStartDate",
        "zoneCycleCount",
        "inStandby",
        "lastUpdatedDt",
        "scheduleType",
        "shadeName",
        "valve",
        "soilName",
        # D-Link cameras
        "image",
        "statusMessage",
        "mute",
        "hubactionMode",
        "switch2",
        "switch3",
        "switch4",
        "switch5",
        "switch6",
        "captureTime",
        "camera",
        "settings",
        "stream",
        "clip",
        # Arlo cameras
        "nightVision",
        "powerManagement",
        "desiredCameraState",
        "ruleId",
        "sound",
        "invertImage",
        "offline",
        "rssi",
        "active",
        "timeLastRefresh",
        "lqi",
        "clipStatus",
        # rooms
        "occupancy",
        "occupancyIconURL",
        "countdown",
        # multisensors
        "batteryStatus",
        "tamper",
        "powerSource",
    ]
)


def default_metrics() -> Dict[str, MetricSpec]:
    fl = FloatMapper()
    clear = ClearMapper()
    contact_doc = "1 if the contact is closed."

    return {
        "alarm": MetricSpec("alarm", "1 if the alarm is on.", OFF_ON),
        "alarmState": MetricSpec("alarm_cleared", "0 if the alarm is clear.", clear),
        "battery": MetricSpec("battery_percentage", "Percentage of battery remaining.", fl),
        "carbonMonoxide": MetricSpec("contact_closed", contact_doc, clear),
        "contact": MetricSpec("contact_closed", contact_doc, OPEN_CLOSED),
        "energy": MetricSpec("energy_usage_joules", "Energy usage in joules.", ScaledFloatMapper(KWH_TO_JOULES)),
        "humidity": MetricSpec("humidity_level", "Humidity Level.", fl),
        "fanSpeed": MetricSpec("fan_level", "Fan Level.", fl),
        "illuminance": MetricSpec("lux_level", "LUX Level.", fl),
        "level": MetricSpec("level_percent", "Level.", fl),
        "lock": MetricSpec("locked", "Is Locked.", LOCKED_UNLOCKED),
        "motion": MetricSpec("motion_detected", "1 if presence is detected.", INACTIVE_ACTIVE),
        "power": MetricSpec("power_usage_watts", "Current power usage in watts.", fl),
        "presence": MetricSpec("presence_detected", "1 if presence is detected.", ABSENT_PRESENT),
        "pressure": MetricSpec("pressure_pascals", "Current pressure in pascals.", fl),
        "smoke": MetricSpec("smoke_detected", "1 if smoke is detected.", clear),
        "switch": MetricSpec("switch_enabled", "1 if the switch is on.", OFF_ON),
        "temperature": MetricSpec("temperature_fahrenheit", "Temperature in fahrenheit.", fl),
        "ultravioletIndex": MetricSpec("ultraviolet_index", "Ultraviolet Index.", fl),
        # vehicles
        "speed": MetricSpec("speed_miles_per_hour", "Speed at Miles Per Hour.", fl),
        "heading": MetricSpec("heading", "heading.", fl),
        "longitude": MetricSpec("longitude", "longitude.", fl),
        "latitude": MetricSpec("latitude", "latitude.", fl),
        "odometer": MetricSpec("odometer", "odometer.", fl),
        "batteryRange": MetricSpec("battery_range", "Range in Miles for Battery.", fl),
        # lighting and device health
        "healthStatus": MetricSpec("healthStatus", "Health Status.", fl),
        "hue": MetricSpec("hue", "Lighting Hue.", fl),
        "saturation": MetricSpec("saturation", "Lighting Saturation.", fl),
        "whiteLevel": MetricSpec("whiteLevel", "White Light Level.", fl),
        "checkInterval": MetricSpec("checkInterval", "Check Interval.", fl),
        "colorTemperature": MetricSpec("colorTemperature", "Color Temperature.", fl),
    }


def default_registry() -> MetricRegistry:
    return MetricRegistry(default_metrics(), DEFAULT_DROP)
