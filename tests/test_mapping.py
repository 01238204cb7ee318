import pytest

from smartthings_exporter.mapping import (
    DEFAULT_DROP,
    EMPTY,
    ClearMapper,
    Converted,
    Dropped,
    EnumeratedPairMapper,
    FloatMapper,
    Invalid,
    MetricRegistry,
    MetricSpec,
    Number,
    Opaque,
    ScaledFloatMapper,
    Text,
    TypeMismatch,
    Unknown,
    UnrecognizedOption,
    default_metrics,
    default_registry,
    raw_value,
)


@pytest.fixture
def registry():
    return default_registry()


def test_raw_value_normalization():
    assert raw_value(None) == EMPTY
    assert raw_value("") == EMPTY
    assert raw_value(55) == Number(55.0)
    assert raw_value(1.5) == Number(1.5)
    assert raw_value("open") == Text("open")
    assert raw_value(True) == Opaque(True)
    assert raw_value({"x": 1}) == Opaque({"x": 1})


@pytest.mark.parametrize("name", ["color", "door", "status", "active", "DeviceWatch-Enroll", "tamper"])
def test_dropped_names(registry, name):
    assert registry.classify(name, "anything") == Dropped(name)
    assert registry.classify(name, 12.0) == Dropped(name)
    assert registry.classify(name, None) == Dropped(name)


def test_drop_wins_over_registered_metric():
    metrics = default_metrics()
    metrics["door"] = MetricSpec("door_open", "Door.", EnumeratedPairMapper("closed", "open"))
    metrics["status"] = MetricSpec("status", "Status.", FloatMapper())
    reg = MetricRegistry(metrics, DEFAULT_DROP)

    assert reg.lookup("door") is not None
    assert isinstance(reg.classify("door", "open"), Dropped)
    assert isinstance(reg.classify("status", 1.0), Dropped)


@pytest.mark.parametrize("name", ["weirdAttr", "Temperature", "battery ", ""])
def test_unknown_names(registry, name):
    assert registry.classify(name, "x") == Unknown(name)


def test_float_pass_through(registry):
    out = registry.classify("battery", "")
    assert isinstance(out, Converted)
    assert out.metric_name == "battery_percentage"
    assert out.value == 0.0

    out = registry.classify("battery", 55.0)
    assert out.metric_name == "battery_percentage"
    assert out.value == 55.0

    assert registry.classify("battery", None).value == 0.0
    assert registry.classify("temperature", 71).value == 71.0


def test_float_rejects_non_numbers(registry):
    out = registry.classify("battery", "bogus")
    assert isinstance(out, Invalid)
    assert isinstance(out.error, TypeMismatch)
    assert out.error.attribute == "battery"
    assert out.error.raw == Text("bogus")
    assert "non floating-point argument" in str(out.error)

    assert isinstance(registry.classify("humidity", "42").error, TypeMismatch)
    assert isinstance(registry.classify("humidity", True).error, TypeMismatch)


def test_scaled_float(registry):
    out = registry.classify("energy", 2.0)
    assert out.metric_name == "energy_usage_joules"
    assert out.value == 7200000.0
    assert registry.classify("energy", "").value == 0.0
    assert isinstance(registry.classify("energy", "2kWh").error, TypeMismatch)


def test_clear_mapper(registry):
    assert registry.classify("alarmState", "clear").value == 0.0
    assert registry.classify("alarmState", "triggered").value == 1.0
    assert registry.classify("smoke", "detected").value == 1.0

    out = registry.classify("alarmState", 5.0)
    assert isinstance(out, Invalid)
    assert isinstance(out.error, TypeMismatch)


def test_clear_mapper_absent_value_is_not_clear():
    assert ClearMapper()(EMPTY) == 1.0


def test_enumerated_pair(registry):
    assert registry.classify("contact", "open").value == 0.0
    assert registry.classify("contact", "closed").value == 1.0

    out = registry.classify("contact", "ajar")
    assert isinstance(out, Invalid)
    assert isinstance(out.error, UnrecognizedOption)
    assert out.error.options == ("open", "closed")
    assert out.error.attribute == "contact"
    assert "'open'" in str(out.error) and "'closed'" in str(out.error)


def test_enumerated_pair_rejects_empty_and_non_strings(registry):
    assert isinstance(registry.classify("lock", "").error, UnrecognizedOption)
    assert isinstance(registry.classify("lock", None).error, UnrecognizedOption)
    assert isinstance(registry.classify("switch", 1.0).error, TypeMismatch)


@pytest.mark.parametrize(
    "name, low, high, metric",
    [
        ("alarm", "off", "on", "alarm"),
        ("switch", "off", "on", "switch_enabled"),
        ("lock", "locked", "unlocked", "locked"),
        ("motion", "inactive", "active", "motion_detected"),
        ("presence", "not present", "present", "presence_detected"),
    ],
)
def test_enumerated_pairs_in_default_table(registry, name, low, high, metric):
    assert registry.classify(name, low) == Converted(name, registry.lookup(name), 0.0)
    assert registry.classify(name, high).value == 1.0
    assert registry.classify(name, high).metric_name == metric


def test_many_attributes_share_a_metric(registry):
    co = registry.classify("carbonMonoxide", "detected")
    contact = registry.classify("contact", "closed")
    assert co.metric_name == contact.metric_name == "contact_closed"
    assert co.value == contact.value == 1.0


def test_describe_lists_each_metric_once(registry):
    names = [s.name for s in registry.describe()]
    assert len(names) == len(set(names))
    assert names.count("contact_closed") == 1
    assert "battery_percentage" in names
    assert "energy_usage_joules" in names
    assert all(s.labels == ("device_id", "device_name") for s in registry.describe())
    assert registry.lookup("battery").fqname == "smartthings_battery_percentage"


def test_registry_is_immutable(registry):
    with pytest.raises(AttributeError):
        registry.foo = 1
    with pytest.raises(TypeError):
        registry.metrics["new"] = MetricSpec("new", "New.", FloatMapper())
    assert isinstance(registry.drop, frozenset)


def test_mappers_directly():
    assert FloatMapper()(Number(3.5)) == 3.5
    assert ScaledFloatMapper(10.0)(Number(2.0)) == 20.0
    with pytest.raises(TypeMismatch):
        ScaledFloatMapper(10.0)(Text("x"))
    with pytest.raises(TypeMismatch):
        ClearMapper()(Opaque([1]))
    with pytest.raises(UnrecognizedOption):
        EnumeratedPairMapper("a", "b")(Text("c"))
