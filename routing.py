from typing import List, Sequence, Tuple

import numpy as np

from models import (
    AisleGraph,
    COINCIDENT_TOLERANCE,
    HORIZONTAL_AISLE_GAP,
    HORIZONTAL_BOUNDARY_MARGIN,
    RouteStep,
    Slot,
    UNITS_PER_METER,
    VERTICAL_AISLE_GAP,
    VERTICAL_BOUNDARY_MARGIN,
)

Point = Tuple[float, float]


def _gap_midpoints(positions, min_gap, inclusive):
    lines = []
    for a, b in zip(positions, positions[1:]):
        gap = b - a
        if gap > min_gap or (inclusive and gap == min_gap):
            lines.append((a + b) / 2)
    return lines


def detect_aisles(slots: Sequence[Slot], vertical_gap: float = VERTICAL_AISLE_GAP,
                  horizontal_gap: float = HORIZONTAL_AISLE_GAP) -> AisleGraph:
    """
    Derive aisle centre-lines from the gaps between slot coordinates.
    Rack-to-rack lanes run along y (vertical lines at x), cross-aisles run
    along x and need a wider gap. One synthetic boundary line is added
    outside the outermost slot on each side of each axis.
    """
    xs = sorted({s.x for s in slots})
    ys = sorted({s.y for s in slots})

    vertical = _gap_midpoints(xs, vertical_gap, inclusive=False)
    horizontal = _gap_midpoints(ys, horizontal_gap, inclusive=True)

    if xs:
        vertical = [xs[0] - VERTICAL_BOUNDARY_MARGIN] + vertical + [xs[-1] + VERTICAL_BOUNDARY_MARGIN]
    if ys:
        horizontal = [ys[0] - HORIZONTAL_BOUNDARY_MARGIN] + horizontal + [ys[-1] + HORIZONTAL_BOUNDARY_MARGIN]

    return AisleGraph(
        vertical=tuple(vertical),
        horizontal=tuple(horizontal),
        occupied_xs=np.asarray(xs, dtype=float),
    )


def find_nearest_aisle(pos: float, aisles: Sequence[float]) -> float:
    if len(aisles) == 0:
        return pos
    nearest = aisles[0]
    min_dist = abs(pos - nearest)
    for aisle in aisles:
        dist = abs(pos - aisle)
        if dist < min_dist:
            min_dist = dist
            nearest = aisle
    return nearest


def _is_blocked(lo: float, hi: float, occupied_xs: np.ndarray) -> bool:
    # any rack column strictly between lo and hi
    left = np.searchsorted(occupied_xs, lo, side="right")
    right = np.searchsorted(occupied_xs, hi, side="left")
    return bool(right > left)


def find_accessible_aisle(slot: Slot, vertical_aisles: Sequence[float], occupied_xs) -> float:
    """
    Nearest vertical aisle the slot faces without another rack column in
    between. Falls back to the plain nearest aisle when every one is
    blocked.
    """
    if len(vertical_aisles) == 0:
        return slot.x
    occupied_xs = np.asarray(occupied_xs, dtype=float)
    best = None
    best_dist = float("inf")
    for aisle in vertical_aisles:
        if _is_blocked(min(aisle, slot.x), max(aisle, slot.x), occupied_xs):
            continue
        dist = abs(aisle - slot.x)
        if dist < best_dist:
            best = aisle
            best_dist = dist
    return best if best is not None else find_nearest_aisle(slot.x, vertical_aisles)


def find_best_horizontal_aisle(start_y: float, end_y: float, horizontal_aisles: Sequence[float]) -> float:
    mid_y = (start_y + end_y) / 2
    if len(horizontal_aisles) == 0:
        return mid_y
    min_y, max_y = min(start_y, end_y), max(start_y, end_y)
    for aisle in horizontal_aisles:
        if min_y <= aisle <= max_y:
            return aisle
    return find_nearest_aisle(mid_y, horizontal_aisles)


def find_aisle_path(from_slot: Slot, to_slot: Slot, graph: AisleGraph) -> List[Point]:
    """
    Waypoints of the walk between two slots: out to the accessible aisle,
    along it (and across a cross-aisle when the target faces another
    aisle), down to the target's y. The last hop from the final waypoint
    onto the target slot is left to the caller.
    """
    start_x, start_y = from_slot.x, from_slot.y
    end_x, end_y = to_slot.x, to_slot.y
    if abs(start_x - end_x) < COINCIDENT_TOLERANCE and abs(start_y - end_y) < COINCIDENT_TOLERANCE:
        return []

    start_aisle_x = find_accessible_aisle(from_slot, graph.vertical, graph.occupied_xs)
    end_aisle_x = find_accessible_aisle(to_slot, graph.vertical, graph.occupied_xs)

    if start_aisle_x == end_aisle_x:
        return [(start_aisle_x, start_y), (start_aisle_x, end_y)]

    crossing_y = find_best_horizontal_aisle(start_y, end_y, graph.horizontal)
    return [
        (start_aisle_x, start_y),
        (start_aisle_x, crossing_y),
        (end_aisle_x, crossing_y),
        (end_aisle_x, end_y),
    ]


def path_length(from_slot: Slot, to_slot: Slot, waypoints: Sequence[Point]) -> float:
    """Manhattan length through the waypoints, final hop included, in slot units."""
    dist = 0.0
    last_x, last_y = from_slot.x, from_slot.y
    for x, y in waypoints:
        dist += abs(x - last_x) + abs(y - last_y)
        last_x, last_y = x, y
    dist += abs(to_slot.x - last_x) + abs(to_slot.y - last_y)
    return dist


def travel_distance(from_slot: Slot, to_slot: Slot, graph: AisleGraph) -> float:
    """Walking distance between two slots in metres."""
    return path_length(from_slot, to_slot, find_aisle_path(from_slot, to_slot, graph)) / UNITS_PER_METER


def route_polyline(route: Sequence[RouteStep], graph: AisleGraph) -> List[Point]:
    """Full drawn path of a wave: each slot followed by the waypoints to the next one."""
    if not route:
        return []
    points = [(route[0].slot.x, route[0].slot.y)]
    for prev, step in zip(route, route[1:]):
        points.extend(find_aisle_path(prev.slot, step.slot, graph))
        points.append((step.slot.x, step.slot.y))
    return points
