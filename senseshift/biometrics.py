"""
SenseShift - Biometrics Providers
Heart rate, SpO2, respiratory rate, calories, steps and sleep.

HealthKit itself is not reachable from Python, so the default provider
reads the export.xml produced by the iOS Health app
(Health -> profile -> Export All Health Data). The in-memory provider
backs the --demo-biometrics mode and the tests.

Query semantics follow HealthKit:
- point samples and sums use a strict start date: start <= sample.start < end
- sleep uses overlap: any sample intersecting [start, end) counts, in full
"""

import asyncio
import logging
import random
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

logger = logging.getLogger(__name__)


class Metric(Enum):
    """HealthKit quantity type identifiers used by the sampler."""
    HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
    OXYGEN_SATURATION = "HKQuantityTypeIdentifierOxygenSaturation"
    RESPIRATORY_RATE = "HKQuantityTypeIdentifierRespiratoryRate"
    ACTIVE_ENERGY_BURNED = "HKQuantityTypeIdentifierActiveEnergyBurned"
    STEP_COUNT = "HKQuantityTypeIdentifierStepCount"


class Unit(Enum):
    COUNT_PER_MINUTE = "count/min"
    PERCENT = "%"
    KILOCALORIE = "kcal"
    COUNT = "count"


class SleepStage(Enum):
    IN_BED = "HKCategoryValueSleepAnalysisInBed"
    ASLEEP_UNSPECIFIED = "HKCategoryValueSleepAnalysisAsleepUnspecified"
    AWAKE = "HKCategoryValueSleepAnalysisAwake"
    ASLEEP_CORE = "HKCategoryValueSleepAnalysisAsleepCore"
    ASLEEP_DEEP = "HKCategoryValueSleepAnalysisAsleepDeep"
    ASLEEP_REM = "HKCategoryValueSleepAnalysisAsleepREM"

    @property
    def is_asleep(self) -> bool:
        return self in ASLEEP_STAGES


ASLEEP_STAGES = frozenset({
    SleepStage.ASLEEP_UNSPECIFIED,
    SleepStage.ASLEEP_CORE,
    SleepStage.ASLEEP_DEEP,
    SleepStage.ASLEEP_REM,
})

SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"

# Older exports write plain "Asleep" for what is now AsleepUnspecified
_LEGACY_SLEEP_VALUES = {
    "HKCategoryValueSleepAnalysisAsleep": SleepStage.ASLEEP_UNSPECIFIED,
}

# (from_unit, to_unit) -> factor
_UNIT_FACTORS: Dict[Tuple[str, str], float] = {
    ("kJ", "kcal"): 1 / 4.184,
    ("Cal", "kcal"): 1.0,
    ("cal", "kcal"): 0.001,
    ("count/s", "count/min"): 60.0,
}


class ProviderError(Exception):
    """A biometrics query failed."""


class AuthorizationError(ProviderError):
    """The user denied (or revoked) access to health data."""


@dataclass(frozen=True)
class QuantitySample:
    metric: str
    value: float
    unit: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class SleepSample:
    stage: SleepStage
    start: datetime
    end: datetime


class BiometricsProvider(Protocol):
    """What the sampler needs from a health data source."""

    async def authorize(self) -> None: ...

    async def samples(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> List[float]: ...

    async def sum(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> float: ...

    async def sleep_duration(self, start: datetime, end: datetime) -> float: ...


# ============================================================
# SHARED HELPERS
# ============================================================

def convert(value: float, from_unit: str, to_unit: Unit) -> float:
    """Convert a stored value into the requested unit."""
    if from_unit == to_unit.value:
        return value
    factor = _UNIT_FACTORS.get((from_unit, to_unit.value))
    if factor is None:
        raise ProviderError(f"Cannot convert {from_unit!r} to {to_unit.value!r}")
    return value * factor


def total_sleep_hours(samples: Iterable[SleepSample]) -> float:
    """
    Hours asleep: sum of interval lengths of every asleep variant.
    'In bed' and 'awake' samples are ignored.
    """
    seconds = sum(
        (s.end - s.start).total_seconds()
        for s in samples
        if s.stage.is_asleep
    )
    return seconds / 3600


def _strict_start(sample_start: datetime, start: datetime, end: datetime) -> bool:
    return start <= sample_start < end


def _overlaps(sample: SleepSample, start: datetime, end: datetime) -> bool:
    return sample.start < end and sample.end > start


def _select(
    records: Iterable[QuantitySample],
    metric: Metric,
    unit: Unit,
    start: datetime,
    end: datetime,
) -> List[float]:
    return [
        convert(r.value, r.unit, unit)
        for r in records
        if r.metric == metric.value and _strict_start(r.start, start, end)
    ]


# ============================================================
# APPLE HEALTH EXPORT
# ============================================================

def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return datetime.fromisoformat(date_str)


def parse_health_export(
    export_path: Path,
) -> Tuple[List[QuantitySample], List[SleepSample]]:
    """
    Read the quantity and sleep records the sampler cares about.

    Uses iterparse so multi-GB exports never sit in memory as a tree.
    Raises ProviderError on unreadable or malformed XML.
    """
    wanted = {m.value for m in Metric}
    quantities: List[QuantitySample] = []
    sleep: List[SleepSample] = []

    try:
        for _, elem in ET.iterparse(str(export_path), events=("end",)):
            if elem.tag != "Record":
                continue

            rec_type = elem.get("type", "")
            try:
                if rec_type in wanted:
                    quantities.append(QuantitySample(
                        metric=rec_type,
                        value=float(elem.get("value", "")),
                        unit=elem.get("unit", ""),
                        start=_parse_date(elem.get("startDate", "")),
                        end=_parse_date(elem.get("endDate", "")),
                    ))
                elif rec_type == SLEEP_ANALYSIS:
                    value = elem.get("value", "")
                    stage = _LEGACY_SLEEP_VALUES.get(value) or SleepStage(value)
                    sleep.append(SleepSample(
                        stage=stage,
                        start=_parse_date(elem.get("startDate", "")),
                        end=_parse_date(elem.get("endDate", "")),
                    ))
            except (ValueError, TypeError):
                logger.debug("Skipping malformed %s record", rec_type)

            elem.clear()
    except (ET.ParseError, OSError) as exc:
        raise ProviderError(f"Cannot read health export {export_path}: {exc}") from exc

    logger.info(
        "Parsed health export: %d quantity samples, %d sleep samples",
        len(quantities), len(sleep),
    )
    return quantities, sleep


class AppleHealthExportProvider:
    """
    BiometricsProvider backed by an Apple Health export.xml.

    Usage::

        provider = AppleHealthExportProvider("~/export.xml")
        await provider.authorize()
        bpm = await provider.samples(Metric.HEART_RATE, Unit.COUNT_PER_MINUTE, start, end)
    """

    def __init__(self, export_path: str):
        self.export_path = Path(export_path).expanduser()
        self._lock = threading.Lock()
        self._quantities: Optional[List[QuantitySample]] = None
        self._sleep: Optional[List[SleepSample]] = None

    def _load(self) -> Tuple[List[QuantitySample], List[SleepSample]]:
        with self._lock:
            if self._quantities is None or self._sleep is None:
                self._quantities, self._sleep = parse_health_export(self.export_path)
            return self._quantities, self._sleep

    def reload(self) -> None:
        """Forget the cached export so the next query re-reads it."""
        with self._lock:
            self._quantities = None
            self._sleep = None

    async def authorize(self) -> None:
        if not self.export_path.is_file():
            raise AuthorizationError(f"Health export not found: {self.export_path}")

    def _samples(self, metric: Metric, unit: Unit, start: datetime, end: datetime) -> List[float]:
        quantities, _ = self._load()
        return _select(quantities, metric, unit, start, end)

    def _sleep_hours(self, start: datetime, end: datetime) -> float:
        _, sleep = self._load()
        return total_sleep_hours(s for s in sleep if _overlaps(s, start, end))

    # parsing and scanning a large export must stay off the event loop
    async def samples(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> List[float]:
        return await asyncio.to_thread(self._samples, metric, unit, start, end)

    async def sum(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> float:
        return float(sum(await self.samples(metric, unit, start, end)))

    async def sleep_duration(self, start: datetime, end: datetime) -> float:
        return await asyncio.to_thread(self._sleep_hours, start, end)


# ============================================================
# IN-MEMORY
# ============================================================

class InMemoryBiometricsProvider:
    """
    BiometricsProvider over a list of samples held in memory.

    failing: metrics (or "sleep") whose queries raise ProviderError.
    """

    def __init__(
        self,
        quantities: Optional[List[QuantitySample]] = None,
        sleep: Optional[List[SleepSample]] = None,
        authorized: bool = True,
        failing: Optional[Set[object]] = None,
    ):
        self.quantities = list(quantities or [])
        self.sleep = list(sleep or [])
        self.authorized = authorized
        self.failing = set(failing or ())
        self.calls: List[str] = []

    def add(self, metric: Metric, value: float, unit: Unit, at: datetime) -> None:
        self.quantities.append(QuantitySample(metric.value, value, unit.value, at, at))

    def _check(self, key: object) -> None:
        if not self.authorized:
            raise AuthorizationError("Health data access denied")
        if key in self.failing:
            raise ProviderError(f"Query failed for {key}")

    async def authorize(self) -> None:
        if not self.authorized:
            raise AuthorizationError("Health data access denied")

    async def samples(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> List[float]:
        self.calls.append(f"samples:{metric.name}")
        self._check(metric)
        return _select(self.quantities, metric, unit, start, end)

    async def sum(
        self, metric: Metric, unit: Unit, start: datetime, end: datetime
    ) -> float:
        self.calls.append(f"sum:{metric.name}")
        self._check(metric)
        return float(sum(_select(self.quantities, metric, unit, start, end)))

    async def sleep_duration(self, start: datetime, end: datetime) -> float:
        self.calls.append("sleep")
        self._check("sleep")
        return total_sleep_hours(s for s in self.sleep if _overlaps(s, start, end))

    @classmethod
    def with_demo_data(
        cls,
        now: datetime,
        rng: Optional[random.Random] = None,
    ) -> "InMemoryBiometricsProvider":
        """An hour of plausible watch readings plus last night's sleep."""
        rng = rng or random.Random()
        provider = cls()

        for minutes_ago in range(55, 0, -5):
            at = now - timedelta(minutes=minutes_ago)
            provider.add(Metric.HEART_RATE, round(rng.uniform(58, 92)), Unit.COUNT_PER_MINUTE, at)
            provider.add(Metric.OXYGEN_SATURATION, round(rng.uniform(0.95, 0.99), 2), Unit.PERCENT, at)
            provider.add(Metric.RESPIRATORY_RATE, round(rng.uniform(12, 18), 1), Unit.COUNT_PER_MINUTE, at)
            provider.add(Metric.ACTIVE_ENERGY_BURNED, round(rng.uniform(0.5, 6.0), 2), Unit.KILOCALORIE, at)
            provider.add(Metric.STEP_COUNT, rng.randint(0, 400), Unit.COUNT, at)

        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        cycle = [
            (SleepStage.IN_BED, 15),
            (SleepStage.ASLEEP_CORE, 120),
            (SleepStage.ASLEEP_DEEP, 60),
            (SleepStage.AWAKE, 10),
            (SleepStage.ASLEEP_REM, 45),
            (SleepStage.ASLEEP_CORE, 150),
        ]
        cursor = midnight
        for stage, minutes in cycle:
            end = cursor + timedelta(minutes=minutes)
            provider.sleep.append(SleepSample(stage, cursor, end))
            cursor = end

        return provider
