from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

# Slot coordinates are in centimetres
UNITS_PER_METER = 100
VERTICAL_AISLE_GAP = 60
HORIZONTAL_AISLE_GAP = 320
VERTICAL_BOUNDARY_MARGIN = 100
HORIZONTAL_BOUNDARY_MARGIN = 200
COINCIDENT_TOLERANCE = 1
MAX_PICK_GAP_SECONDS = 3600
HEATMAP_CHUNK_SIZE = 800
METRICS_BATCH_SIZE = 5
DEFAULT_WAVE_ID = "Wave1"


class Granularity(Enum):
    SLOT = "slot"
    BAY = "bay"
    AISLE = "aisle"


@dataclass(frozen=True)
class Slot:
    location: str
    aisle_bay: str = ""
    zone: str = ""
    x: float = 0.0
    y: float = 0.0
    aisle: str = ""
    bay: str = ""
    row: str = ""
    column: str = ""


@dataclass
class SlotAnnotation:
    is_on_route: bool = False
    is_current: bool = False
    visit_count: int = 0
    highlighted: bool = False


@dataclass(frozen=True)
class RouteStep:
    time: Any
    timestamp: float
    location: str
    bay_location: str
    aisle: str
    slot: Slot
    sku: str = ""
    parsed_time: Optional[float] = None
    row_index: int = 0


@dataclass(frozen=True)
class AisleGraph:
    vertical: Tuple[float, ...] = ()
    horizontal: Tuple[float, ...] = ()
    # sorted distinct slot x-coordinates, for the rack obstruction check
    occupied_xs: np.ndarray = field(default_factory=lambda: np.empty(0), compare=False, repr=False)


@dataclass(frozen=True)
class RevisitEvent:
    granularity: Granularity
    wave_id: str
    key: str
    first_visit: int
    revisit: int


@dataclass
class WaveMetrics:
    wave_id: str
    units: int = 0
    total_distance: float = 0.0
    total_time_seconds: float = 0.0
    location_crosses: int = 0
    location_crosses_bay: int = 0
    aisle_crosses: int = 0
    avg_time_per_unit: float = 0.0
    pick_speed: float = 0.0
    pick_times: List[float] = field(default_factory=list)

    @property
    def total_revisits(self) -> int:
        return self.location_crosses + self.location_crosses_bay + self.aisle_crosses


@dataclass
class RouteMetrics:
    location_crosses: int = 0
    location_crosses_bay: int = 0
    aisle_crosses: int = 0
    total_distance: float = 0.0
    total_time_seconds: float = 0.0
    pick_times: List[float] = field(default_factory=list)
    slowest_pick_time: float = 0.0
    slowest_pick_location: str = ""
    fastest_pick_time: Optional[float] = None
    fastest_pick_location: str = ""

    @property
    def total_revisits(self) -> int:
        return self.location_crosses + self.location_crosses_bay + self.aisle_crosses

    @property
    def avg_pick_time(self) -> float:
        return sum(self.pick_times) / len(self.pick_times) if self.pick_times else 0.0

    def record_pick_time(self, seconds: float, location: str):
        self.total_time_seconds += seconds
        self.pick_times.append(seconds)
        if seconds > self.slowest_pick_time:
            self.slowest_pick_time = seconds
            self.slowest_pick_location = location
        if self.fastest_pick_time is None or seconds < self.fastest_pick_time:
            self.fastest_pick_time = seconds
            self.fastest_pick_location = location


@dataclass(frozen=True)
class EnhancedMetrics:
    pick_rate: float
    distance_per_unit: float
    path_efficiency: float
    travel_speed: float
    wasted_distance: float
    revisit_rate: float
    optimal_distance: float


@dataclass(frozen=True)
class ColumnMapping:
    location: Optional[str] = None
    sku: Optional[str] = None
    wave: Optional[str] = None
    time: Optional[str] = None
    aisle: Optional[str] = None


@dataclass
class WaveRouteIndex:
    routes: Dict[str, List[RouteStep]] = field(default_factory=dict)
    matched: int = 0
    wave_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TimelineEntry:
    wave_id: str
    route_index: int
    timestamp: float
