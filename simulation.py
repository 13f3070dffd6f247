from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Sequence

import pandas as pd

from batching import build_global_timeline, build_wave_routes, validate_mapping
from heatmap import HeatmapAccumulator
from kpis import (
    build_comparison_table,
    calculate_enhanced_metrics,
    calculate_hourly_pick_data,
    calculate_ideal_distance,
    calculate_wave_metrics,
    find_abnormal_waves,
    iter_wave_metrics,
    sku_stats_frame,
    trusted_time_gap,
)
from models import (
    AisleGraph,
    ColumnMapping,
    EnhancedMetrics,
    Granularity,
    HEATMAP_CHUNK_SIZE,
    METRICS_BATCH_SIZE,
    RevisitEvent,
    RouteMetrics,
    RouteStep,
    Slot,
    SlotAnnotation,
    TimelineEntry,
    WaveMetrics,
    WaveRouteIndex,
)
from revisits import WaveRevisitTracker
from routing import detect_aisles, route_polyline, travel_distance
from storage import parse_location_data, search_slots

_CROSS_COUNTERS = {
    Granularity.SLOT: "location_crosses",
    Granularity.BAY: "location_crosses_bay",
    Granularity.AISLE: "aisle_crosses",
}


class AnalysisSession:
    """
    In-memory analysis state for one slot map, one route upload and one wave
    selection, with step-by-step playback over the selection's timeline.

    Reloading slots or routes drops everything derived from them, cached
    wave metrics included. Changing the selection resets playback, the
    heatmap and slot annotations and starts a new heatmap generation, so a
    pending ``prepare_routes`` generator from the old selection goes inert.
    """

    def __init__(self):
        self.slots: List[Slot] = []
        self.graph = AisleGraph()
        self.index = WaveRouteIndex()
        self.selected_waves: List[str] = []
        self.annotations: Dict[str, SlotAnnotation] = {}
        self.heatmap = HeatmapAccumulator(self.annotations)
        self.metrics_cache: Dict[str, WaveMetrics] = {}
        self.timeline: List[TimelineEntry] = []
        self._ideal_distance: Optional[float] = None
        self.reset_playback()

    @property
    def wave_routes(self) -> Dict[str, List[RouteStep]]:
        return self.index.routes

    # --- loading -----------------------------------------------------------

    def load_slots(self, data) -> List[Slot]:
        self.slots = parse_location_data(data)
        self.graph = detect_aisles(self.slots)
        self.index = WaveRouteIndex()
        self.selected_waves = []
        self.metrics_cache.clear()
        self._reset_route_state()
        return self.slots

    def load_routes(self, rows, mapping: ColumnMapping) -> WaveRouteIndex:
        validate_mapping(mapping, rows.columns if isinstance(rows, pd.DataFrame) else None)
        if not self.slots:
            raise ValueError("load the slot map before route data")
        self.index = build_wave_routes(rows, mapping, self.slots)
        self.selected_waves = []
        self.metrics_cache.clear()
        self._reset_route_state()
        return self.index

    def select_waves(self, wave_ids: Sequence[str]):
        # order kept, repeats dropped
        self.selected_waves = list(dict.fromkeys(w for w in wave_ids if w in self.wave_routes))
        self._reset_route_state()

    def _reset_route_state(self):
        self.heatmap.reset()
        self.annotations.clear()
        self.timeline = []
        self._ideal_distance = None
        self.reset_playback()

    def prepare_routes(self, chunk_size: int = HEATMAP_CHUNK_SIZE) -> Iterator[int]:
        """Heatmap accumulation in chunks, then the global timeline once the
        last chunk is done. Yields the number of steps processed so far."""
        generation = self.heatmap.generation
        chunks = self.heatmap.accumulate(self.selected_waves, self.wave_routes, chunk_size)
        return self._prepare(generation, chunks)

    def _prepare(self, generation, chunks):
        yield from chunks
        if generation == self.heatmap.generation:
            self.timeline = build_global_timeline(self.selected_waves, self.wave_routes)

    def prepare(self, chunk_size: int = HEATMAP_CHUNK_SIZE):
        for _ in self.prepare_routes(chunk_size):
            pass

    # --- playback ----------------------------------------------------------

    def reset_playback(self):
        self.current_step = 0
        self.route_metrics = RouteMetrics()
        self.trackers: Dict[str, WaveRevisitTracker] = {}
        self.revisit_events: Dict[Granularity, List[RevisitEvent]] = {g: [] for g in Granularity}
        self.visited_paths: Dict[str, List[Slot]] = {w: [] for w in self.selected_waves}
        self.sku_pick_counts: Dict[str, int] = defaultdict(int)
        self.sku_wave_sets: Dict[str, set] = defaultdict(set)
        self._current_location: Optional[str] = None
        for note in self.annotations.values():
            note.is_current = False

    @property
    def max_route_steps(self) -> int:
        return len(self.timeline)

    @property
    def is_finished(self) -> bool:
        return self.current_step >= len(self.timeline)

    def process_entry(self, entry: TimelineEntry) -> List[RevisitEvent]:
        route = self.wave_routes.get(entry.wave_id)
        if not route or entry.route_index >= len(route):
            return []
        step = route[entry.route_index]
        self._mark_current(step.slot.location)
        self.visited_paths.setdefault(entry.wave_id, []).append(step.slot)

        if step.sku:
            self.sku_pick_counts[step.sku] += 1
            self.sku_wave_sets[step.sku].add(entry.wave_id)

        if entry.route_index > 0:
            prev = route[entry.route_index - 1]
            self.route_metrics.total_distance += travel_distance(prev.slot, step.slot, self.graph)
            gap = trusted_time_gap(prev, step)
            if gap is not None:
                self.route_metrics.record_pick_time(gap, step.location)

        tracker = self.trackers.get(entry.wave_id)
        if tracker is None:
            tracker = self.trackers[entry.wave_id] = WaveRevisitTracker(entry.wave_id)
        events = tracker.observe(step, entry.route_index + 1)
        for event in events:
            self.revisit_events[event.granularity].append(event)
            counter = _CROSS_COUNTERS[event.granularity]
            setattr(self.route_metrics, counter, getattr(self.route_metrics, counter) + 1)
        return events

    def _mark_current(self, location: str):
        if self._current_location is not None and self._current_location in self.annotations:
            self.annotations[self._current_location].is_current = False
        self.annotations.setdefault(location, SlotAnnotation()).is_current = True
        self._current_location = location

    def step_forward(self) -> Optional[List[RevisitEvent]]:
        if self.is_finished:
            return None
        events = self.process_entry(self.timeline[self.current_step])
        self.current_step += 1
        return events

    def seek(self, target_step: int):
        """Replay from the start so that exactly ``target_step`` steps are processed."""
        self.reset_playback()
        target_step = max(0, min(target_step, len(self.timeline)))
        while self.current_step < target_step:
            self.step_forward()

    def run_to_end(self) -> RouteMetrics:
        while not self.is_finished:
            self.step_forward()
        return self.route_metrics

    # --- aggregates --------------------------------------------------------

    def ideal_distance(self) -> float:
        if self._ideal_distance is None:
            self._ideal_distance = calculate_ideal_distance(self.selected_waves, self.wave_routes, self.graph)
        return self._ideal_distance

    def enhanced_metrics(self) -> EnhancedMetrics:
        return calculate_enhanced_metrics(self.route_metrics, self.current_step, self.ideal_distance())

    def wave_metrics(self, wave_id: str) -> WaveMetrics:
        metrics = self.metrics_cache.get(wave_id)
        if metrics is None:
            metrics = self.metrics_cache[wave_id] = calculate_wave_metrics(wave_id, self.wave_routes, self.graph)
        return metrics

    def comparison_batches(self, batch_size: int = METRICS_BATCH_SIZE,
                           wave_ids: Optional[Sequence[str]] = None) -> Iterator[List[WaveMetrics]]:
        """Selected waves by default; results land in the metrics cache."""
        wave_ids = self.selected_waves if wave_ids is None else wave_ids
        return iter_wave_metrics(wave_ids, self.wave_routes, self.graph, self.metrics_cache, batch_size)

    def comparison_table(self) -> pd.DataFrame:
        metrics = [m for batch in self.comparison_batches() for m in batch]
        return build_comparison_table(metrics)

    def abnormal_waves(self, slot: bool = True, shelf: bool = True, aisle: bool = True) -> Dict[str, Dict[str, int]]:
        metrics = [self.wave_metrics(w) for w in self.index.wave_ids]
        return find_abnormal_waves(metrics, slot=slot, shelf=shelf, aisle=aisle)

    def hourly_pick_data(self) -> List[int]:
        return calculate_hourly_pick_data(self.selected_waves, self.wave_routes)

    def sku_stats(self) -> pd.DataFrame:
        return sku_stats_frame(self.sku_pick_counts, self.sku_wave_sets)

    def polylines(self) -> Dict[str, list]:
        return {w: route_polyline(self.wave_routes[w], self.graph) for w in self.selected_waves}

    def search(self, query: str) -> List[Slot]:
        matches = search_slots(self.slots, query)
        hits = {s.location for s in matches}
        for location, note in self.annotations.items():
            note.highlighted = location in hits
        for location in hits:
            self.annotations.setdefault(location, SlotAnnotation()).highlighted = True
        return matches
