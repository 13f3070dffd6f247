import functools
import math
import re
from collections import defaultdict
from dataclasses import replace
from numbers import Number
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from models import ColumnMapping, DEFAULT_WAVE_ID, RouteStep, Slot, TimelineEntry, WaveRouteIndex
from storage import cell_text, truncate_to_bay_level

NUMERIC_TIME = re.compile(r"[+-]?\d+(\.\d+)?")

# Column-name patterns used to pre-fill the mapping, in role order
COLUMN_PATTERNS = {
    "wave": re.compile(r"wave|picker|path", re.I),
    "time": re.compile(r"time|date|seq", re.I),
    "location": re.compile(r"location|loc", re.I),
    "aisle": re.compile(r"aisle", re.I),
    "sku": re.compile(r"sku", re.I),
}


def guess_column_mapping(columns: Iterable[str]) -> ColumnMapping:
    columns = [str(c) for c in columns]
    guessed = {}
    for role, pattern in COLUMN_PATTERNS.items():
        guessed[role] = next((c for c in columns if pattern.search(c)), None)
    return ColumnMapping(**guessed)


def validate_mapping(mapping: ColumnMapping, columns: Optional[Iterable[str]] = None) -> ColumnMapping:
    if not mapping.location:
        raise ValueError("location column must be mapped")
    if not mapping.sku:
        raise ValueError("sku column must be mapped")
    if columns is not None:
        columns = set(columns)
        unknown = [c for c in (mapping.wave, mapping.time, mapping.location, mapping.aisle, mapping.sku)
                   if c and c not in columns]
        if unknown:
            raise ValueError(f"mapped columns not in route data: {unknown}")
    return mapping


def parse_time_value(value: Any) -> Optional[float]:
    """Epoch milliseconds of a time cell, or None when it does not parse.
    Plain numbers, and text holding one, are taken as epoch milliseconds already."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Number):
        value = float(value)
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, pd.Timestamp):
        ts = value
    else:
        text = cell_text(value)
        if not text:
            return None
        if NUMERIC_TIME.fullmatch(text):
            return float(text)
        ts = pd.to_datetime(text, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.value / 1e6


class SlotMatcher:
    """
    Case-insensitive slot lookup for route locations. A row location may
    name a slot by location or by aisle+bay label, either as given or
    truncated to bay level; among all candidates the slot loaded first wins.
    """

    def __init__(self, slots: Sequence[Slot]):
        self.slots = list(slots)
        self._by_location: Dict[str, int] = {}
        self._by_aisle_bay: Dict[str, int] = {}
        for idx, slot in enumerate(self.slots):
            if slot.location:
                self._by_location.setdefault(slot.location.lower(), idx)
            if slot.aisle_bay:
                self._by_aisle_bay.setdefault(slot.aisle_bay.lower(), idx)

    def match(self, location: str) -> Optional[Slot]:
        if not location:
            return None
        keys = {location.lower(), truncate_to_bay_level(location).lower()}
        candidates = [
            index[key]
            for index in (self._by_location, self._by_aisle_bay)
            for key in keys
            if key in index
        ]
        return self.slots[min(candidates)] if candidates else None


def _compare_steps(a: RouteStep, b: RouteStep) -> int:
    if a.parsed_time is not None and b.parsed_time is not None:
        diff = a.parsed_time - b.parsed_time
        return (diff > 0) - (diff < 0)
    ta, tb = str(a.time), str(b.time)
    return (ta > tb) - (ta < tb)


def _records(rows) -> List[Dict[str, Any]]:
    if isinstance(rows, pd.DataFrame):
        return rows.to_dict("records")
    return list(rows)


def build_wave_routes(rows, mapping: ColumnMapping, slots: Sequence[Slot]) -> WaveRouteIndex:
    """
    Group raw route rows into per-wave ordered routes. Rows whose location
    does not resolve to a known slot are dropped; only matched rows are
    counted. Without a wave column every row belongs to one wave.
    """
    matcher = SlotMatcher(slots)
    routes: Dict[str, List[RouteStep]] = defaultdict(list)
    matched = 0

    for idx, row in enumerate(_records(rows)):
        wave_id = (cell_text(row.get(mapping.wave)) if mapping.wave else "") or DEFAULT_WAVE_ID
        location = cell_text(row.get(mapping.location))
        if not location:
            continue
        slot = matcher.match(location)
        if slot is None:
            continue
        time = row.get(mapping.time) if mapping.time else idx
        parsed = parse_time_value(time) if mapping.time else None
        aisle = cell_text(row.get(mapping.aisle)) if mapping.aisle else ""
        sku = cell_text(row.get(mapping.sku)) if mapping.sku else ""
        matched += 1
        routes[wave_id].append(RouteStep(
            time=time,
            timestamp=parsed if parsed is not None else float(idx),
            location=location,
            bay_location=truncate_to_bay_level(location),
            aisle=aisle or slot.aisle or "",
            slot=slot,
            sku=sku,
            parsed_time=parsed,
            row_index=idx,
        ))

    if mapping.time:
        key = functools.cmp_to_key(_compare_steps)
        ordered = {wave_id: sorted(route, key=key) for wave_id, route in routes.items()}
    else:
        ordered = dict(routes)
    return WaveRouteIndex(routes=ordered, matched=matched, wave_ids=sorted(ordered))


def build_global_timeline(selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]]) -> List[TimelineEntry]:
    """Every step of the selected waves, interleaved by time."""
    timeline = []
    for wave_id in selected_waves:
        for idx, step in enumerate(wave_routes.get(wave_id, [])):
            timeline.append(TimelineEntry(wave_id=wave_id, route_index=idx, timestamp=step.timestamp))
    timeline.sort(key=lambda e: (e.timestamp, e.wave_id, e.route_index))
    return timeline


def resolve_column_mapping(columns: Iterable[str], **overrides: Optional[str]) -> ColumnMapping:
    """Guessed mapping with explicitly chosen columns taking precedence."""
    guessed = guess_column_mapping(columns)
    chosen = {role: col for role, col in overrides.items() if col}
    return replace(guessed, **chosen)
