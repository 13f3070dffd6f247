from typing import Dict, List, Optional, Sequence

from models import Granularity, RevisitEvent, RouteStep
from storage import truncate_to_bay_level


class RevisitDetector:
    """
    Backtrack detection for one wave at one granularity.

    Keys are fed in step order. Staying on the same key is not a revisit and
    is collapsed in the history; coming back to a key after visiting another
    one is, including the plain A -> B -> A case.
    """

    def __init__(self, wave_id: str, granularity: Granularity):
        self.wave_id = wave_id
        self.granularity = granularity
        self.reset()

    def reset(self):
        self.history: List[str] = []
        self.events: List[RevisitEvent] = []
        self._first_visit: Dict[str, int] = {}

    @property
    def count(self) -> int:
        return len(self.events)

    def observe(self, key: Optional[str], step: int) -> Optional[RevisitEvent]:
        if not key:
            return None
        if self.history and self.history[-1] == key:
            return None
        event = None
        first = self._first_visit.get(key)
        if first is None:
            self._first_visit[key] = step
        else:
            event = RevisitEvent(
                granularity=self.granularity,
                wave_id=self.wave_id,
                key=key,
                first_visit=first,
                revisit=step,
            )
            self.events.append(event)
        self.history.append(key)
        return event


def step_keys(step: RouteStep) -> Dict[Granularity, str]:
    return {
        Granularity.SLOT: step.location,
        Granularity.BAY: step.bay_location or truncate_to_bay_level(step.location),
        Granularity.AISLE: step.aisle,
    }


class WaveRevisitTracker:
    """Slot, bay and aisle detectors of one wave, fed from route steps."""

    def __init__(self, wave_id: str):
        self.wave_id = wave_id
        self.detectors = {g: RevisitDetector(wave_id, g) for g in Granularity}

    def reset(self):
        for detector in self.detectors.values():
            detector.reset()

    def observe(self, step: RouteStep, step_number: int) -> List[RevisitEvent]:
        events = []
        for granularity, key in step_keys(step).items():
            event = self.detectors[granularity].observe(key, step_number)
            if event is not None:
                events.append(event)
        return events

    def count(self, granularity: Granularity) -> int:
        return self.detectors[granularity].count

    def events(self, granularity: Granularity) -> List[RevisitEvent]:
        return list(self.detectors[granularity].events)


def detect_revisits(route: Sequence[RouteStep], wave_id: str) -> Dict[Granularity, List[RevisitEvent]]:
    tracker = WaveRevisitTracker(wave_id)
    for idx, step in enumerate(route):
        tracker.observe(step, idx + 1)
    return {g: tracker.events(g) for g in Granularity}
