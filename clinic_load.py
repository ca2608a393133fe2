"""
Clinic load forecaster — expected utilisation of a program by hour of day.

A LoadTable maps (program_id, hour) to a load in [0, 1].  Hours missing
from the table read as the default load (0.5).  The synthetic table
mirrors typical outpatient demand: quiet overnight, a morning peak
(9-11), the busiest afternoon window (14-17), and an elevated evening
(18-20), with a small deterministic per-program offset so neighbouring
clinics differ.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from scoring_config import SCORING_MODEL

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24

# (first hour, last hour inclusive, base load, spread).  Checked in order;
# the first matching window wins, everything else is the daytime base.
_LOAD_WINDOWS = (
    (9, 11, 0.70, 0.25),     # morning peak
    (14, 17, 0.80, 0.20),    # afternoon peak
    (18, 20, 0.60, 0.20),    # evening
    (22, 23, 0.20, 0.15),    # night
    (0, 6, 0.20, 0.15),      # early morning
)
_DAYTIME_BASE = (0.30, 0.20)


@dataclass(frozen=True)
class ProgramLoad:
    program_id: int
    hour: int
    load: float


@dataclass(frozen=True)
class LoadWindow:
    """Time from now until the start of the next low-load hour."""
    hours: int
    minutes: int
    starts_at: datetime
    load: float

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    def to_dict(self) -> dict:
        return {
            "hours": self.hours,
            "minutes": self.minutes,
            "startsAt": self.starts_at.isoformat(),
            "load": self.load,
        }


def _validate_entry(program_id, hour: int, load: float) -> None:
    if not isinstance(hour, int) or not 0 <= hour < HOURS_PER_DAY:
        raise ValueError(f"Hour {hour!r} for program {program_id!r} outside 0..23")
    if not 0.0 <= load <= 1.0:
        raise ValueError(f"Load {load!r} for program {program_id!r} hour {hour} outside [0, 1]")


def _program_offset(program_id, hour: int) -> float:
    """Deterministic value in [0, 1) per (program, hour)."""
    key = f"{program_id}|{hour}".encode("utf-8")
    digest = hashlib.blake2b(key, digest_size=8).digest()
    return int.from_bytes(digest, "big") / 2 ** 64


def synthetic_hourly_loads(program_id) -> Tuple[float, ...]:
    loads = []
    for hour in range(HOURS_PER_DAY):
        base, spread = _DAYTIME_BASE
        for first, last, w_base, w_spread in _LOAD_WINDOWS:
            if first <= hour <= last:
                base, spread = w_base, w_spread
                break
        loads.append(min(1.0, base + spread * _program_offset(program_id, hour)))
    return tuple(loads)


class LoadTable:
    """Read-only (program_id, hour) -> load lookup."""

    def __init__(self, entries: Iterable[ProgramLoad] = (), default_load: Optional[float] = None):
        self.default_load = SCORING_MODEL.load.default_load if default_load is None else default_load
        self._loads: Dict[Tuple[int, int], float] = {}
        for e in entries:
            _validate_entry(e.program_id, e.hour, e.load)
            self._loads[(e.program_id, e.hour)] = float(e.load)

    def __len__(self) -> int:
        return len(self._loads)

    def __contains__(self, key) -> bool:
        return key in self._loads

    @classmethod
    def from_entries(cls, entries: Iterable[ProgramLoad]) -> "LoadTable":
        return cls(entries)

    @classmethod
    def from_profiles(cls, profiles: Mapping[int, Sequence[float]]) -> "LoadTable":
        """Build from program_id -> 24 hourly loads."""
        entries = []
        for program_id, loads in profiles.items():
            if len(loads) != HOURS_PER_DAY:
                raise ValueError(
                    f"Program {program_id!r} needs {HOURS_PER_DAY} hourly loads, got {len(loads)}"
                )
            entries.extend(ProgramLoad(program_id, hour, load) for hour, load in enumerate(loads))
        return cls(entries)

    @classmethod
    def synthetic(cls, program_ids: Iterable[int]) -> "LoadTable":
        return cls.from_profiles({pid: synthetic_hourly_loads(pid) for pid in program_ids})

    def hourly(self, program_id) -> Tuple[float, ...]:
        return tuple(self.load_for_hour(program_id, h) for h in range(HOURS_PER_DAY))

    def load_for_hour(self, program_id, hour: int) -> float:
        return self._loads.get((program_id, hour % HOURS_PER_DAY), self.default_load)

    def load_at(self, program_id, when: datetime) -> float:
        return self.load_for_hour(program_id, when.hour)

    def next_low_load(
        self,
        program_id,
        now: datetime,
        threshold: Optional[float] = None,
    ) -> Optional[LoadWindow]:
        """First future hour (1..24 hours ahead) whose load is below threshold.

        The current hour is never returned, even if it is already quiet.
        Returns None when no hour in the next day qualifies.
        """
        if threshold is None:
            threshold = SCORING_MODEL.load.low_load_threshold
        hour_start = now.replace(minute=0, second=0, microsecond=0)
        for ahead in range(1, SCORING_MODEL.load.lookahead_hours + 1):
            starts_at = hour_start + timedelta(hours=ahead)
            load = self.load_for_hour(program_id, starts_at.hour)
            if load < threshold:
                # Whole minutes; seconds within the current minute are ignored
                total_minutes = ahead * 60 - now.minute
                return LoadWindow(
                    hours=total_minutes // 60,
                    minutes=total_minutes % 60,
                    starts_at=starts_at,
                    load=load,
                )
        logger.debug("No hour below %.2f for program %s in the next day", threshold, program_id)
        return None


def is_busy(load: float) -> bool:
    """True when the predicted load warrants a "busy" warning."""
    return load > SCORING_MODEL.load.busy_threshold
