from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from . import __version__
from .mapping import (
    DEVICE_LABELS,
    NAMESPACE,
    Converted,
    Dropped,
    Invalid,
    MetricRegistry,
    MetricSpec,
    Unknown,
)
from .smartthings import Device, SmartThingsError


@dataclass(frozen=True)
class Sample:
    metric: MetricSpec
    device_id: str
    device_name: str
    value: float

    @property
    def labels(self) -> List[str]:
        return [self.device_id, self.device_name]


@dataclass(frozen=True)
class CounterSnapshot:
    dropped: int
    unknown: int
    invalid: int
    emitted: int


class CollectionCounters:
    def __init__(self) -> None:
        self._lock = Lock()
        self._dropped = 0
        self._unknown = 0
        self._invalid = 0
        self._emitted = 0

    def inc_dropped(self) -> None:
        with self._lock:
            self._dropped += 1

    def inc_unknown(self) -> None:
        with self._lock:
            self._unknown += 1

    def inc_invalid(self) -> None:
        with self._lock:
            self._invalid += 1

    def inc_emitted(self) -> None:
        with self._lock:
            self._emitted += 1

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(self._dropped, self._unknown, self._invalid, self._emitted)


class AttributeCollector:
    """Runs device attributes through a registry and yields one sample per
    successful conversion.

    Dropped, unknown and invalid attributes only move the counters. The
    counters belong to this instance and keep growing across cycles.
    """

    def __init__(self, registry: MetricRegistry, counters: Optional[CollectionCounters] = None) -> None:
        self.registry = registry
        self.counters = counters if counters is not None else CollectionCounters()

    def describe(self) -> List[MetricSpec]:
        return self.registry.describe()

    def collect(self, devices: Iterable[Device]) -> Iterator[Sample]:
        for dev in devices:
            logging.debug(
                "device=%s id=%s attributes=%d",
                dev.display_name,
                dev.device_id,
                len(dev.attributes),
            )
            for name, raw in dev.attributes.items():
                outcome = self.registry.classify(name, raw)

                if isinstance(outcome, Dropped):
                    self.counters.inc_dropped()
                    logging.debug("  attr=%r val=%r dropped", name, raw)
                elif isinstance(outcome, Unknown):
                    self.counters.inc_unknown()
                    logging.debug("  attr=%r val=%r unknown", name, raw)
                elif isinstance(outcome, Invalid):
                    self.counters.inc_invalid()
                    logging.error(
                        "device=%s attr=%r val=%r invalid: %s",
                        dev.display_name,
                        name,
                        raw,
                        outcome.error,
                    )
                elif isinstance(outcome, Converted):
                    logging.debug("  attr=%r val=%r metric=%s value=%f", name, raw, outcome.metric.fqname, outcome.value)
                    self.counters.inc_emitted()
                    yield Sample(outcome.metric, dev.device_id, dev.display_name, outcome.value)


DeviceLister = Callable[[], List[Device]]


class SmartThingsCollector:
    """prometheus_client custom collector; every scrape is one collection cycle."""

    def __init__(
        self,
        list_devices: DeviceLister,
        registry: MetricRegistry,
        ready_grace_seconds: float = 300.0,
        counters: Optional[CollectionCounters] = None,
    ) -> None:
        self.list_devices = list_devices
        self.attributes = AttributeCollector(registry, counters)
        self.ready_grace_seconds = float(ready_grace_seconds)

        self.lock = Lock()
        self.last_scrape_error: int = 0
        self.last_scrape_duration: float = 0.0
        self.last_ok_ts: float = 0.0
        self.last_device_count: int = 0

    @property
    def counters(self) -> CollectionCounters:
        return self.attributes.counters

    def is_ready(self) -> bool:
        with self.lock:
            if self.last_ok_ts <= 0:
                return False
            return (time.time() - self.last_ok_ts) <= self.ready_grace_seconds

    def _fetch_devices(self) -> Optional[List[Device]]:
        try:
            devices = self.list_devices()
        except SmartThingsError as e:
            logging.error("error reading list of devices: %s", e)
            return None
        except Exception:
            logging.exception("device listing failed")
            return None

        if devices is None:
            logging.error("error reading list of devices: no response")
            return None
        return list(devices)

    def run_cycle(self) -> List[Sample]:
        """One full pass; an upstream failure yields no samples."""
        t0 = time.time()
        devices = self._fetch_devices()
        samples: List[Sample] = []
        if devices is not None:
            samples = list(self.attributes.collect(devices))
        dt = time.time() - t0

        with self.lock:
            self.last_scrape_duration = float(dt)
            if devices is None:
                self.last_scrape_error = 1
            else:
                self.last_scrape_error = 0
                self.last_ok_ts = time.time()
                self.last_device_count = len(devices)
        return samples

    def _self_families(self) -> List[Any]:
        snap = self.counters.snapshot()

        invalid = CounterMetricFamily(f"{NAMESPACE}_invalid_metric", "Total number of metrics that were invalid.")
        unknown = CounterMetricFamily(f"{NAMESPACE}_unknown_metric", "Total number of metrics that exporter didn't know.")
        dropped = CounterMetricFamily(f"{NAMESPACE}_dropped_metric", "Total number of metrics that exporter purposely dropped.")
        emitted = CounterMetricFamily(f"{NAMESPACE}_emitted_samples", "Total number of samples converted from device attributes, counted before duplicate series are skipped.")

        scrape_err = GaugeMetricFamily(f"{NAMESPACE}_last_scrape_error", "Last device listing failed (1) or not (0).")
        scrape_dur = GaugeMetricFamily(f"{NAMESPACE}_last_scrape_duration_seconds", "Duration of the last collection cycle.")
        devices = GaugeMetricFamily(f"{NAMESPACE}_devices", "Devices seen in the last successful collection cycle.")
        build = GaugeMetricFamily(f"{NAMESPACE}_exporter_build_info", "Exporter build information.", labels=["version", "python"])

        invalid.add_metric([], float(snap.invalid))
        unknown.add_metric([], float(snap.unknown))
        dropped.add_metric([], float(snap.dropped))
        emitted.add_metric([], float(snap.emitted))

        with self.lock:
            scrape_err.add_metric([], float(self.last_scrape_error))
            scrape_dur.add_metric([], float(self.last_scrape_duration))
            devices.add_metric([], float(self.last_device_count))

        build.add_metric([__version__, sys.version.split()[0]], 1.0)

        return [invalid, unknown, dropped, emitted, scrape_err, scrape_dur, devices, build]

    def _families(self) -> Dict[str, GaugeMetricFamily]:
        out: Dict[str, GaugeMetricFamily] = {}
        for spec in self.attributes.describe():
            out[spec.name] = GaugeMetricFamily(spec.fqname, spec.documentation, labels=list(DEVICE_LABELS))
        return out

    def describe(self):
        yield from self._families().values()
        yield from self._self_families()

    def collect(self):
        samples = self.run_cycle()

        families = self._families()
        seen: Set[Tuple[str, str, str]] = set()
        for s in samples:
            key = (s.metric.name, s.device_id, s.device_name)
            if key in seen:
                logging.warning(
                    "device=%s id=%s metric=%s duplicate sample skipped",
                    s.device_name,
                    s.device_id,
                    s.metric.fqname,
                )
                continue
            seen.add(key)
            families[s.metric.name].add_metric(s.labels, s.value)

        for fam in families.values():
            if fam.samples:
                yield fam
        yield from self._self_families()
