# main.py

import argparse
import os

import pandas as pd
from tqdm import tqdm

from batching import resolve_column_mapping
from kpis import format_time, pick_time_summary
from models import Granularity, HEATMAP_CHUNK_SIZE
from simulation import AnalysisSession
from storage import validate_slot_frame


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Wave route analysis: travel distance, pick time and revisits.")
    parser.add_argument("--slots", required=True, help="Slot map CSV (location, coord_x_val, coord_y_val, ...)")
    parser.add_argument("--routes", required=True, help="Route CSV, one row per pick")
    parser.add_argument("--wave-col", default=None, help="Wave column (guessed from headers if omitted)")
    parser.add_argument("--time-col", default=None, help="Time column (guessed from headers if omitted)")
    parser.add_argument("--location-col", default=None, help="Location column (guessed from headers if omitted)")
    parser.add_argument("--aisle-col", default=None, help="Aisle column (guessed from headers if omitted)")
    parser.add_argument("--sku-col", default=None, help="SKU column (guessed from headers if omitted)")
    parser.add_argument("--waves", nargs="*", default=None, help="Waves to analyze (default: all)")
    parser.add_argument("--chunk-size", type=int, default=HEATMAP_CHUNK_SIZE, help="Steps per heatmap chunk")
    parser.add_argument("--max-details", type=int, default=20, help="Revisit events listed per level")
    parser.add_argument("--out-dir", default=None, help="Write comparison, revisit and heatmap CSVs here")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    session = AnalysisSession()

    slots_df = validate_slot_frame(pd.read_csv(args.slots, dtype=str, keep_default_na=False))
    session.load_slots(slots_df)
    print(f"Loaded {len(session.slots)} slots, "
          f"{len(session.graph.vertical)} vertical / {len(session.graph.horizontal)} horizontal aisles")

    routes_df = pd.read_csv(args.routes, dtype=str, keep_default_na=False)
    mapping = resolve_column_mapping(
        routes_df.columns,
        wave=args.wave_col, time=args.time_col, location=args.location_col, aisle=args.aisle_col, sku=args.sku_col,
    )
    try:
        index = session.load_routes(routes_df, mapping)
    except ValueError as e:
        print(f"Error: {e}")
        return 2
    print(f"{len(index.wave_ids)} wave paths found, {index.matched} of {len(routes_df)} steps matched")
    if not index.wave_ids:
        print("No valid routes!")
        return 1

    session.select_waves(args.waves if args.waves else index.wave_ids)
    if not session.selected_waves:
        print("None of the requested waves exist.")
        return 1
    total = sum(len(session.wave_routes[w]) for w in session.selected_waves)
    with tqdm(total=total, desc="Heatmap", unit="step") as bar:
        for done in session.prepare_routes(args.chunk_size):
            bar.update(done - bar.n)
    for _ in tqdm(range(session.max_route_steps), desc="Playback", unit="step"):
        session.step_forward()

    table = session.comparison_table()
    print("\n=== Wave Comparison ===")
    print(table.to_string(index=False, float_format=lambda v: f"{v:.2f}"))

    rm = session.route_metrics
    enhanced = session.enhanced_metrics()
    print("\n=== Selection ===")
    print(f"Waves: {len(session.selected_waves)}  Units: {session.current_step}")
    print(f"Distance: {rm.total_distance:.1f} m  Time: {format_time(rm.total_time_seconds)}")
    print(f"Revisits: {rm.location_crosses} slot / {rm.location_crosses_bay} shelf / {rm.aisle_crosses} aisle")
    if rm.pick_times:
        print(f"Slowest pick: {rm.slowest_pick_time:.1f}s at {rm.slowest_pick_location}  "
              f"Fastest pick: {rm.fastest_pick_time:.1f}s at {rm.fastest_pick_location}")
    for key, value in pick_time_summary(rm.pick_times).items():
        print(f"  {key}: {value:.2f}" if isinstance(value, float) else f"  {key}: {value}")

    print("\n=== Efficiency ===")
    print(f"Pick rate: {enhanced.pick_rate:.1f} units/h")
    print(f"Distance per unit: {enhanced.distance_per_unit:.2f} m")
    print(f"Path efficiency: {enhanced.path_efficiency:.1f}% (nearest-neighbour baseline {enhanced.optimal_distance:.1f} m)")
    print(f"Travel speed: {enhanced.travel_speed:.1f} m/min")
    print(f"Wasted distance: {enhanced.wasted_distance:.1f} m")
    print(f"Revisit rate: {enhanced.revisit_rate:.1f}%")

    for granularity in Granularity:
        events = session.revisit_events[granularity]
        print(f"\n=== {granularity.value.title()} Revisits ({len(events)}) ===")
        for e in events[:args.max_details]:
            print(f"  {e.wave_id}: {e.key} first visited at step {e.first_visit}, again at step {e.revisit}")

    abnormal = session.abnormal_waves()
    print(f"\nAbnormal waves: {len(abnormal)}")

    if args.out_dir:
        os.makedirs(args.out_dir, exist_ok=True)
        table.to_csv(os.path.join(args.out_dir, "wave_comparison.csv"), index=False)
        revisits = pd.DataFrame([
            {"Level": e.granularity.value, "Revisit Step": e.revisit, "Wave": e.wave_id,
             "Key": e.key, "First Visit Step": e.first_visit}
            for g in Granularity for e in session.revisit_events[g]
        ], columns=["Level", "Revisit Step", "Wave", "Key", "First Visit Step"])
        revisits.to_csv(os.path.join(args.out_dir, "revisits.csv"), index=False)
        heat = pd.DataFrame(sorted(session.heatmap.frequencies.items(), key=lambda kv: -kv[1]),
                            columns=["Location", "Visits"])
        heat.to_csv(os.path.join(args.out_dir, "heatmap.csv"), index=False)
        print(f"Wrote CSVs to {args.out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
