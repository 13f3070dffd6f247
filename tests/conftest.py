import pandas as pd
import pytest

from storage import gen_slot_layout, slots_to_frame

ROUTE_ROWS = [
    # wave, time, location, aisle, sku
    ("W1", "2024-03-01 08:00:00", "Z1-0101-01", "01", "SKU-1"),
    ("W1", "2024-03-01 08:00:30", "Z1-0103-01", "01", "SKU-2"),
    ("W1", "2024-03-01 08:01:00", "Z1-0202-01", "02", "SKU-3"),
    ("W1", "2024-03-01 08:01:40", "Z1-0101-02", "01", "SKU-1"),
    ("W2", "2024-03-01 08:00:10", "Z1-0105-01", "01", "SKU-2"),
    ("W2", "2024-03-01 08:00:50", "Z1-0105-01", "01", "SKU-2"),
    ("W2", "2024-03-01 10:00:00", "Z1-0207-01", "02", "SKU-4"),
    ("W3", "2024-03-01 09:00:00", "OFF-MAP-01", "09", "SKU-9"),
]


@pytest.fixture
def slots_df():
    return slots_to_frame(gen_slot_layout(num_aisles=2, bays_per_side=4)).astype(str)


@pytest.fixture
def routes_df():
    return pd.DataFrame(ROUTE_ROWS, columns=["wave_id", "pick_time", "location", "aisle", "sku"])
