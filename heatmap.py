import math
from typing import Dict, Iterator, List, Optional, Sequence

from models import HEATMAP_CHUNK_SIZE, RouteStep, SlotAnnotation

# yellow -> orange -> red
_RAMP = ((255, 244, 184), (244, 162, 97), (231, 76, 60))


class HeatmapAccumulator:
    """
    Visit frequency per location across the selected waves.

    ``accumulate`` returns a generator that processes ``chunk_size`` steps per
    resume, so a caller driving it from an event loop or UI thread can
    interleave other work between chunks. ``reset`` starts a new generation:
    a generator created before the reset stops at its next resume and never
    touches the new frequency map.
    """

    def __init__(self, annotations: Optional[Dict[str, SlotAnnotation]] = None):
        self.annotations = annotations if annotations is not None else {}
        self.frequencies: Dict[str, int] = {}
        self.generation = 0

    def reset(self):
        self.generation += 1
        self.frequencies = {}

    def accumulate(self, selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]],
                   chunk_size: int = HEATMAP_CHUNK_SIZE) -> Iterator[int]:
        """Yield the running number of processed steps after each chunk."""
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        # bound now, not on first resume
        return self._chunks(self.generation, self.frequencies, selected_waves, wave_routes, chunk_size)

    def _chunks(self, generation, frequencies, selected_waves, wave_routes, chunk_size):
        processed = 0
        in_chunk = 0
        for wave_id in selected_waves:
            for step in wave_routes.get(wave_id) or []:
                if generation != self.generation:
                    return
                frequencies[step.location] = frequencies.get(step.location, 0) + 1
                note = self.annotations.setdefault(step.slot.location, SlotAnnotation())
                note.visit_count = frequencies[step.location]
                note.is_on_route = True
                processed += 1
                in_chunk += 1
                if in_chunk >= chunk_size:
                    in_chunk = 0
                    yield processed
        if in_chunk:
            yield processed

    def run(self, selected_waves: Sequence[str], wave_routes: Dict[str, List[RouteStep]],
            chunk_size: int = HEATMAP_CHUNK_SIZE) -> Dict[str, int]:
        for _ in self.accumulate(selected_waves, wave_routes, chunk_size):
            pass
        return self.frequencies

    @property
    def max_visits(self) -> int:
        return max(self.frequencies.values(), default=0)


def heatmap_color(count: int, frequencies: Dict[str, int]) -> str:
    max_count = max(1, max(frequencies.values(), default=0))
    ratio = min(count / max_count, 1)
    if ratio <= 0.5:
        start, end, t = _RAMP[0], _RAMP[1], ratio * 2
    else:
        start, end, t = _RAMP[1], _RAMP[2], (ratio - 0.5) * 2
    r, g, b = (math.floor(s + (e - s) * t + 0.5) for s, e in zip(start, end))
    return f"rgb({r},{g},{b})"
