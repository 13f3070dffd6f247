from typing import Any, Iterable, List, Mapping

import pandas as pd

from models import Slot

SLOT_FILE_COLUMNS = {"location", "coord_x_val", "coord_y_val"}


def cell_text(value: Any) -> str:
    """Spreadsheet cell as stripped text; None/NaN read as empty."""
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def truncate_to_bay_level(location_id: Any) -> str:
    """
    Drop the slot-number suffix of a location id.
    ID1111-2550-33 -> ID1111-2550
    """
    text = cell_text(location_id)
    if not text:
        return ""
    parts = text.split("-")
    if len(parts) >= 2:
        return "-".join(parts[:2])
    return text


def _coord(value: Any) -> float:
    num = pd.to_numeric(value, errors="coerce")
    return 0.0 if pd.isna(num) else float(num)


def _records(data) -> List[Mapping[str, Any]]:
    if isinstance(data, pd.DataFrame):
        return data.to_dict("records")
    return list(data)


def parse_location_data(data) -> List[Slot]:
    slots = []
    for row in _records(data):
        slots.append(Slot(
            location=cell_text(row.get("location")),
            aisle_bay=cell_text(row.get("aisle+bay")),
            zone=cell_text(row.get("zone")),
            x=_coord(row.get("coord_x_val")),
            y=_coord(row.get("coord_y_val")),
            aisle=cell_text(row.get("aisle")),
            bay=cell_text(row.get("bay")),
            row=cell_text(row.get("row")),
            column=cell_text(row.get("column")),
        ))
    return slots


def validate_slot_frame(df: pd.DataFrame) -> pd.DataFrame:
    missing = SLOT_FILE_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"slot file missing columns: {sorted(missing)}")
    return df


def read_slot_file(path: str) -> List[Slot]:
    return parse_location_data(validate_slot_frame(pd.read_csv(path)))


def gen_slot_layout(num_aisles: int, bays_per_side: int, bays_per_block: int = 10, zone: str = "Z1",
                    aisle_width: float = 300.0, rack_depth: float = 50.0, bay_length: float = 120.0,
                    cross_aisle_width: float = 400.0) -> List[Slot]:
    """
    Rectilinear layout: every aisle is a walking lane between two rack
    columns, neighbouring aisles stand back to back. Bays run along y and
    are split into blocks separated by cross-aisles. Each slot is one bay,
    located at ``{zone}-{aisle:02d}{bay:02d}``; odd bays face the left rack.
    """
    slots = []
    pitch = 2 * rack_depth + aisle_width
    for aisle in range(1, num_aisles + 1):
        x_left = (aisle - 1) * pitch + rack_depth / 2
        x_right = x_left + rack_depth + aisle_width
        for side, x in enumerate((x_left, x_right)):
            for s_idx in range(bays_per_side):
                block = s_idx // bays_per_block
                y = s_idx * bay_length + block * cross_aisle_width + bay_length / 2
                bay = 2 * s_idx + 1 + side
                aisle_bay = f"{aisle:02d}{bay:02d}"
                slots.append(Slot(
                    location=f"{zone}-{aisle_bay}",
                    aisle_bay=aisle_bay,
                    zone=zone,
                    x=x,
                    y=y,
                    aisle=f"{aisle:02d}",
                    bay=f"{bay:02d}",
                    row=str(block + 1),
                    column=str(2 * aisle - 1 + side),
                ))
    return slots


def slots_to_frame(slots: Iterable[Slot]) -> pd.DataFrame:
    return pd.DataFrame([{
        "aisle": s.aisle,
        "bay": s.bay,
        "aisle+bay": s.aisle_bay,
        "row": s.row,
        "column": s.column,
        "zone": s.zone,
        "location": s.location,
        "coord_x_val": s.x,
        "coord_y_val": s.y,
    } for s in slots])


def list_zones(slots: Iterable[Slot]) -> List[str]:
    return sorted({s.zone for s in slots})


def filter_slots_by_zone(slots: List[Slot], zone: str) -> List[Slot]:
    if not zone:
        return list(slots)
    return [s for s in slots if s.zone == zone]


def search_slots(slots: Iterable[Slot], query: str) -> List[Slot]:
    q = (query or "").lower()
    if not q:
        return []
    return [
        s for s in slots
        if q in s.aisle_bay.lower() or q in s.location.lower() or q in s.zone.lower()
    ]
