"""
Generate two CSVs to try the wave route analysis on:
1) slots.csv: columns [aisle, bay, aisle+bay, row, column, zone, location, coord_x_val, coord_y_val]
2) routes.csv: columns [wave_id, pick_time, location, aisle, sku]

Route locations carry a slot-number suffix (e.g. Z1-0305-02) so bay-level matching is exercised.
Waves walk the layout mostly in order; a few picks are pushed to the end of the wave to create
revisits, and a few pauses exceed an hour so they drop out of the pick-time figures.

Usage:
  python tools/generate_wave_csvs.py --num-aisles 8 --bays-per-side 20 --num-waves 50 --seed 42 --out-dir run_data
"""
from __future__ import annotations
import argparse
import os
from datetime import datetime, timedelta
from typing import List

import numpy as np
import pandas as pd

# Reuse canonical slot naming from project
try:
    from models import Slot
    from storage import gen_slot_layout, slots_to_frame
except ImportError:
    # direct execution from tools/
    import sys
    sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from models import Slot
    from storage import gen_slot_layout, slots_to_frame


def sample_popularity(n: int, alpha: float = 1.1) -> np.ndarray:
    # Zipf-like popularity over slots
    ranks = np.arange(1, n + 1)
    weights = 1.0 / np.power(ranks, alpha)
    np.random.shuffle(weights)
    return weights / weights.sum()


def assign_skus(slots: List[Slot]) -> dict:
    # one SKU per slot
    sku_ids = np.random.permutation(len(slots)) + 100000
    return {s.location: f"SKU{int(sku)}" for s, sku in zip(slots, sku_ids)}


def generate_waves(slots: List[Slot], sku_by_location: dict, num_waves: int, start: datetime,
                   revisit_prob: float = 0.08, stall_prob: float = 0.02) -> pd.DataFrame:
    probs = sample_popularity(len(slots))
    order = {s.location: i for i, s in enumerate(slots)}

    # Wave sizes: 5-40 picks
    sizes = np.random.randint(5, 41, size=num_waves)

    rows = []
    cursor = start
    for w, size in enumerate(sizes):
        wave_id = f"W{w + 1:04d}"
        picks = list(np.random.choice(len(slots), size=size, replace=True, p=probs))
        # walk in layout order, then push some picks to the end to force backtracking
        picks.sort(key=lambda i: order[slots[i].location])
        for i in range(len(picks)):
            if np.random.rand() < revisit_prob:
                picks.append(picks[i])
        cursor += timedelta(minutes=int(np.random.exponential(scale=20)))
        t = cursor
        for i in picks:
            slot = slots[i]
            if np.random.rand() < stall_prob:
                # long break, dropped from pick-time metrics
                t += timedelta(hours=2)
            else:
                t += timedelta(seconds=int(np.random.gamma(shape=2.0, scale=15.0)) + 1)
            rows.append({
                "wave_id": wave_id,
                "pick_time": t.strftime("%Y-%m-%d %H:%M:%S"),
                "location": f"{slot.location}-{np.random.randint(1, 5):02d}",
                "aisle": slot.aisle,
                "sku": sku_by_location[slot.location],
            })
    return pd.DataFrame(rows)


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--num-aisles", type=int, default=8)
    ap.add_argument("--bays-per-side", type=int, default=20)
    ap.add_argument("--bays-per-block", type=int, default=10)
    ap.add_argument("--num-waves", type=int, default=50)
    ap.add_argument("--seed", type=int, default=42)
    ap.add_argument("--out-dir", type=str, default="run_data")
    args = ap.parse_args()

    np.random.seed(args.seed)

    slots = gen_slot_layout(args.num_aisles, args.bays_per_side, args.bays_per_block)
    sku_by_location = assign_skus(slots)
    start = datetime.now().replace(hour=6, minute=0, second=0, microsecond=0) - timedelta(days=1)
    routes_df = generate_waves(slots, sku_by_location, args.num_waves, start)

    out_dir = args.out_dir
    os.makedirs(out_dir, exist_ok=True)
    slots_path = os.path.join(out_dir, "slots.csv")
    routes_path = os.path.join(out_dir, "routes.csv")

    slots_to_frame(slots).to_csv(slots_path, index=False)
    routes_df.to_csv(routes_path, index=False)

    print(f"Wrote: {slots_path}\n       : {routes_path}\n       Info: {len(slots)} slots, "
          f"{routes_df['wave_id'].nunique()} waves, {len(routes_df)} picks")


if __name__ == "__main__":
    main()
