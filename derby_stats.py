"""
derby_stats.py

Per-racer, per-class heat time statistics computed from the canonical
record table. Stats are immutable and always recomputed from the full table.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from derby_merge import IDENTITY_COLUMNS, RacerKey

logger = logging.getLogger(__name__)


def valid_finish_times(values) -> np.ndarray:
    """Finite, strictly positive finish times in their original order."""
    times = pd.to_numeric(pd.Series(values, dtype=object), errors="coerce").to_numpy(dtype=float)
    return times[np.isfinite(times) & (times > 0)]


@dataclass(frozen=True)
class RacerClassStats:
    """Aggregated heat times of one racer in one standard class."""

    # === Identity ===
    racer_key: RacerKey
    class_name: str
    car_name: str = ""

    # === Raw Data ===
    times: Tuple[float, ...] = ()

    # === Metrics ===
    race_count: int = 0
    avg_time: float = 0.0
    avg_except_slowest: float = 0.0
    best_time: float = 0.0
    worst_time: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0

    @property
    def first_name(self) -> str:
        return self.racer_key.first_name

    @property
    def last_name(self) -> str:
        return self.racer_key.last_name

    @property
    def car_number(self) -> str:
        return self.racer_key.car_number

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def finished(self) -> bool:
        return self.race_count > 0

    def get_display_name(self) -> str:
        """Get formatted display name with car number."""
        return f"{self.full_name} (#{self.car_number})"

    def score(self, scoring_key: str) -> float:
        return getattr(self, scoring_key)

    @classmethod
    def from_times(cls, racer_key: RacerKey, class_name: str, times,
                   car_name: str = "") -> "RacerClassStats":
        """Factory computing every metric from a racer's heat times.

        Non-positive and missing times are ignored. With no time left the
        record is zeroed and race_count is 0.
        """
        heat_times = valid_finish_times(times)
        n = int(heat_times.size)
        if n == 0:
            return cls(racer_key=racer_key, class_name=class_name, car_name=car_name)

        total = float(np.sum(heat_times))
        avg = total / n
        worst = float(np.max(heat_times))
        # Official scoring drops each racer's slowest heat.
        avg_except_slowest = (total - worst) / (n - 1) if n > 1 else avg

        return cls(
            racer_key=racer_key,
            class_name=class_name,
            car_name=car_name,
            times=tuple(float(t) for t in heat_times),
            race_count=n,
            avg_time=avg,
            avg_except_slowest=avg_except_slowest,
            best_time=float(np.min(heat_times)),
            worst_time=worst,
            median=float(np.median(heat_times)),
            std_dev=float(np.std(heat_times)),
        )


def _first_car_name(values) -> str:
    for v in values:
        if isinstance(v, str) and v:
            return v
    return ""


def compute_racer_stats(table: pd.DataFrame) -> List[RacerClassStats]:
    """Group canonical rows by (racer key, class) and compute their stats.

    Groups are returned in first-appearance order of the table. Every heat
    row is consumed; racers whose heats never finished get a zeroed record.
    """
    if table is None or table.empty:
        return []

    results = []
    for (*_, class_name), group in table.groupby(IDENTITY_COLUMNS + ["Class"], sort=False):
        first = group.iloc[0]
        stats = RacerClassStats.from_times(
            racer_key=RacerKey.from_row(first),
            class_name=class_name,
            times=group["FinishTime"].tolist(),
            car_name=_first_car_name(group["CarName"]),
        )
        if not stats.finished:
            logger.debug("%s has no finished heat in %s", stats.get_display_name(), class_name)
        results.append(stats)

    logger.info("Computed stats for %d racer/class groups", len(results))
    return results


def stats_for_class(stats: List[RacerClassStats], class_name: str) -> List[RacerClassStats]:
    return [s for s in stats if s.class_name == class_name]


def find_stats(stats: List[RacerClassStats], racer_key: RacerKey,
               class_name: Optional[str] = None) -> List[RacerClassStats]:
    """All stat records of a racer, optionally limited to one class."""
    return [
        s for s in stats
        if s.racer_key == racer_key and (class_name is None or s.class_name == class_name)
    ]


def stats_to_frame(stats: List[RacerClassStats]) -> pd.DataFrame:
    """Tabular view of stat records, used by reports and debugging."""
    rows = []
    for s in stats:
        rows.append({
            "Class": s.class_name,
            "FirstName": s.first_name,
            "LastName": s.last_name,
            "CarNumber": s.car_number,
            "CarName": s.car_name,
            "Races": s.race_count,
            "Avg": s.avg_time,
            "Avg (drop slowest)": s.avg_except_slowest,
            "Best": s.best_time,
            "Worst": s.worst_time,
            "Median": s.median,
            "StdDev": s.std_dev,
        })
    return pd.DataFrame(rows)
