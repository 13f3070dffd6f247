from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd

from models import (
    AisleGraph,
    EnhancedMetrics,
    Granularity,
    MAX_PICK_GAP_SECONDS,
    METRICS_BATCH_SIZE,
    RouteStep,
    WaveMetrics,
)
from revisits import WaveRevisitTracker
from routing import travel_distance

COMPARISON_COLUMNS = [
    "Wave ID", "Units", "Distance (m)", "Duration", "Duration (s)",
    "Slot Revisits", "Shelf Revisits", "Aisle Revisits", "Total Revisits", "Speed (u/min)",
]


def trusted_time_gap(prev_step: RouteStep, step: RouteStep) -> Optional[float]:
    """Seconds between two consecutive picks, or None when either time is
    missing or the gap is not within (0, MAX_PICK_GAP_SECONDS)."""
    if prev_step.parsed_time is None or step.parsed_time is None:
        return None
    gap = (step.parsed_time - prev_step.parsed_time) / 1000
    if 0 < gap < MAX_PICK_GAP_SECONDS:
        return gap
    return None


def calculate_wave_metrics(wave_id: str, wave_routes: Dict[str, List[RouteStep]], graph: AisleGraph) -> WaveMetrics:
    route = wave_routes.get(wave_id) or []
    if not route:
        return WaveMetrics(wave_id=wave_id)

    total_distance = 0.0
    total_time = 0.0
    pick_times = []
    tracker = WaveRevisitTracker(wave_id)

    for i, step in enumerate(route):
        if i > 0:
            prev = route[i - 1]
            total_distance += travel_distance(prev.slot, step.slot, graph)
            gap = trusted_time_gap(prev, step)
            if gap is not None:
                total_time += gap
                pick_times.append(gap)
        tracker.observe(step, i + 1)

    units = len(route)
    return WaveMetrics(
        wave_id=wave_id,
        units=units,
        total_distance=total_distance,
        total_time_seconds=total_time,
        location_crosses=tracker.count(Granularity.SLOT),
        location_crosses_bay=tracker.count(Granularity.BAY),
        aisle_crosses=tracker.count(Granularity.AISLE),
        avg_time_per_unit=total_time / units if total_time > 0 else 0.0,
        pick_speed=units / total_time * 60 if total_time > 0 else 0.0,
        pick_times=pick_times,
    )


def calculate_ideal_distance(selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]],
                             graph: AisleGraph) -> float:
    """
    Nearest-neighbour tour length (m) over the distinct slots of the
    selected waves, starting from the first slot encountered. This is a
    greedy heuristic, not an optimal tour: it is only a baseline for path
    efficiency and can come out longer than the walked route.
    """
    slots = []
    seen = set()
    for wave_id in selected_waves:
        for step in wave_routes.get(wave_id, []):
            if step.slot.location not in seen:
                seen.add(step.slot.location)
                slots.append(step.slot)
    if len(slots) < 2:
        return 0.0

    current = slots[0]
    remaining = slots[1:]
    distance = 0.0
    while remaining:
        nearest_idx = 0
        nearest_dist = float("inf")
        for idx, slot in enumerate(remaining):
            d = travel_distance(current, slot, graph)
            if d < nearest_dist:
                nearest_dist = d
                nearest_idx = idx
        distance += nearest_dist
        current = remaining.pop(nearest_idx)
    return distance


def calculate_enhanced_metrics(route_metrics, total_units: int, optimal_distance: float = 0.0) -> EnhancedMetrics:
    """Derived efficiency and quality figures; works on RouteMetrics or WaveMetrics."""
    total_distance = route_metrics.total_distance
    total_time_hours = route_metrics.total_time_seconds / 3600
    total_time_minutes = route_metrics.total_time_seconds / 60

    pick_rate = total_units / total_time_hours if total_time_hours > 0 else 0.0
    distance_per_unit = total_distance / total_units if total_units > 0 else 0.0
    if optimal_distance > 0 and total_distance > 0:
        path_efficiency = optimal_distance / total_distance * 100
    else:
        path_efficiency = 0.0

    travel_speed = total_distance / total_time_minutes if total_time_minutes > 0 else 0.0
    wasted_distance = max(0.0, total_distance - optimal_distance)
    revisit_rate = route_metrics.total_revisits / total_units * 100 if total_units > 0 else 0.0

    return EnhancedMetrics(
        pick_rate=pick_rate,
        distance_per_unit=distance_per_unit,
        path_efficiency=path_efficiency,
        travel_speed=travel_speed,
        wasted_distance=wasted_distance,
        revisit_rate=revisit_rate,
        optimal_distance=optimal_distance,
    )


def iter_wave_metrics(wave_ids: Sequence[str], wave_routes: Dict[str, List[RouteStep]], graph: AisleGraph,
                      cache: Optional[Dict[str, WaveMetrics]] = None,
                      batch_size: int = METRICS_BATCH_SIZE) -> Iterator[List[WaveMetrics]]:
    """Per-wave metrics, yielded in batches so callers can interleave other work."""
    batch = []
    for wave_id in wave_ids:
        metrics = cache.get(wave_id) if cache is not None else None
        if metrics is None:
            metrics = calculate_wave_metrics(wave_id, wave_routes, graph)
            if cache is not None:
                cache[wave_id] = metrics
        batch.append(metrics)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def format_time(seconds: float) -> str:
    if not seconds:
        return "0:00"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def build_comparison_table(metrics: Iterable[WaveMetrics]) -> pd.DataFrame:
    rows = [{
        "Wave ID": m.wave_id,
        "Units": m.units,
        "Distance (m)": m.total_distance,
        "Duration": format_time(m.total_time_seconds),
        "Duration (s)": m.total_time_seconds,
        "Slot Revisits": m.location_crosses,
        "Shelf Revisits": m.location_crosses_bay,
        "Aisle Revisits": m.aisle_crosses,
        "Total Revisits": m.total_revisits,
        "Speed (u/min)": m.pick_speed,
    } for m in metrics]
    df = pd.DataFrame(rows, columns=COMPARISON_COLUMNS)
    if df.empty:
        df["Best"] = pd.Series(dtype=bool)
        df["Worst"] = pd.Series(dtype=bool)
        return df

    # Best: shortest walked distance together with fewest revisits; worst the opposite
    walked = df.loc[df["Distance (m)"] > 0, "Distance (m)"]
    best_distance = walked.min() if not walked.empty else None
    df["Best"] = (
        (df["Distance (m)"] == best_distance) & (df["Total Revisits"] == df["Total Revisits"].min())
        if best_distance is not None else False
    )
    df["Worst"] = (df["Distance (m)"] == df["Distance (m)"].max()) & (df["Total Revisits"] == df["Total Revisits"].max())
    return df


def sort_comparison_table(df: pd.DataFrame, column: str = "Wave ID", ascending: bool = True) -> pd.DataFrame:
    if column not in df.columns:
        raise ValueError(f"unknown comparison column: {column}")
    if column == "Duration":
        column = "Duration (s)"
    return df.sort_values(column, ascending=ascending, kind="stable").reset_index(drop=True)


def find_abnormal_waves(metrics: Iterable[WaveMetrics], slot: bool = True, shelf: bool = True,
                        aisle: bool = True) -> Dict[str, Dict[str, int]]:
    """Waves with at least one revisit at an enabled granularity."""
    abnormal = {}
    for m in metrics:
        if m.total_revisits == 0:
            continue
        if (slot and m.location_crosses > 0) or (shelf and m.location_crosses_bay > 0) or (aisle and m.aisle_crosses > 0):
            abnormal[m.wave_id] = {
                "slot_revisits": m.location_crosses,
                "shelf_revisits": m.location_crosses_bay,
                "aisle_revisits": m.aisle_crosses,
                "total": m.total_revisits,
            }
    return abnormal


def calculate_hourly_pick_data(selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]]) -> List[int]:
    """Picks per hour of day (UTC), steps without a parsed time are skipped."""
    stamps = [
        step.parsed_time
        for wave_id in selected_waves
        for step in wave_routes.get(wave_id, [])
        if step.parsed_time is not None
    ]
    if not stamps:
        return [0] * 24
    hours = (np.floor(np.asarray(stamps) / 3_600_000) % 24).astype(int)
    return np.bincount(hours, minlength=24).tolist()


def pick_time_summary(pick_times: Sequence[float]) -> Dict[str, float]:
    if not pick_times:
        return {"Picks Timed": 0, "Mean (s)": 0.0, "Median (s)": 0.0, "P90 (s)": 0.0, "Min (s)": 0.0, "Max (s)": 0.0}
    arr = np.asarray(pick_times, dtype=float)
    return {
        "Picks Timed": int(arr.size),
        "Mean (s)": float(arr.mean()),
        "Median (s)": float(np.median(arr)),
        "P90 (s)": float(np.percentile(arr, 90)),
        "Min (s)": float(arr.min()),
        "Max (s)": float(arr.max()),
    }


def sku_stats_frame(pick_counts: Dict[str, int], wave_sets: Dict[str, set]) -> pd.DataFrame:
    rows = [
        {"SKU": sku, "Pick Count": count, "Waves": len(wave_sets.get(sku, ()))}
        for sku, count in pick_counts.items()
    ]
    df = pd.DataFrame(rows, columns=["SKU", "Pick Count", "Waves"])
    return df.sort_values("Pick Count", ascending=False, kind="stable").reset_index(drop=True)


def sku_pick_stats(selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]]) -> pd.DataFrame:
    pick_counts = defaultdict(int)
    wave_sets = defaultdict(set)
    for wave_id in selected_waves:
        for step in wave_routes.get(wave_id, []):
            if step.sku:
                pick_counts[step.sku] += 1
                wave_sets[step.sku].add(wave_id)
    return sku_stats_frame(pick_counts, wave_sets)
