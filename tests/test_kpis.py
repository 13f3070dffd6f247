import pytest

from kpis import (
    build_comparison_table,
    calculate_enhanced_metrics,
    calculate_hourly_pick_data,
    calculate_ideal_distance,
    calculate_wave_metrics,
    find_abnormal_waves,
    format_time,
    iter_wave_metrics,
    pick_time_summary,
    sku_pick_stats,
    sort_comparison_table,
    trusted_time_gap,
)
from models import AisleGraph, RouteMetrics, RouteStep, Slot, WaveMetrics
from routing import detect_aisles, travel_distance

MINUTE_MS = 60_000


def _step(slot, parsed_time=None, sku="", aisle="01"):
    return RouteStep(time=parsed_time, timestamp=parsed_time or 0, location=slot.location,
                     bay_location=slot.location, aisle=aisle, slot=slot, sku=sku, parsed_time=parsed_time)


def _slots(*coords):
    return [Slot(location=f"L{i}", x=x, y=y) for i, (x, y) in enumerate(coords)]


def test_long_pause_dropped_from_time():
    slots = _slots((0, 0), (0, 100), (0, 200))
    route = [_step(slots[0], 0), _step(slots[1], 30 * MINUTE_MS), _step(slots[2], 120 * MINUTE_MS)]
    m = calculate_wave_metrics("W1", {"W1": route}, detect_aisles(slots))
    assert m.total_time_seconds == 1800
    assert m.pick_times == [1800]
    assert m.units == 3
    # single rack column: every hop walks out to the boundary lane and back
    assert m.total_distance == pytest.approx(6.0)
    assert m.avg_time_per_unit == 600
    assert m.pick_speed == pytest.approx(0.1)


def test_untrusted_gaps():
    a, b = _slots((0, 0), (0, 100))
    assert trusted_time_gap(_step(a, 5000), _step(b, 5000)) is None
    assert trusted_time_gap(_step(a, 5000), _step(b, 1000)) is None
    assert trusted_time_gap(_step(a, None), _step(b, 1000)) is None
    assert trusted_time_gap(_step(a, 0), _step(b, 3600 * 1000)) is None
    assert trusted_time_gap(_step(a, 0), _step(b, 2500)) == 2.5


def test_empty_wave_is_zero():
    m = calculate_wave_metrics("missing", {}, AisleGraph())
    assert m == WaveMetrics(wave_id="missing")
    assert m.total_revisits == 0


def test_ideal_distance_on_manhattan_triangle():
    # all three pairwise distances are 100 units
    slots = _slots((0, 0), (100, 0), (50, 50))
    route = [_step(s) for s in slots]
    assert calculate_ideal_distance(["W1"], {"W1": route}, AisleGraph()) == pytest.approx(2.0)


def test_ideal_distance_is_greedy_not_optimal():
    p, q, r, s = _slots((0, 0), (100, 0), (-150, 0), (300, 0))
    graph = AisleGraph()
    route = [_step(x) for x in (p, q, r, s)]
    greedy = calculate_ideal_distance(["W1"], {"W1": route}, graph)
    assert greedy == pytest.approx(7.5)
    best_from_p = (travel_distance(p, r, graph) + travel_distance(r, q, graph) + travel_distance(q, s, graph))
    assert best_from_p == pytest.approx(6.0)


def test_ideal_distance_counts_each_slot_once():
    a, b = _slots((0, 0), (100, 0))
    routes = {"W1": [_step(a), _step(b), _step(a)], "W2": [_step(b)]}
    assert calculate_ideal_distance(["W1", "W2"], routes, AisleGraph()) == pytest.approx(1.0)
    assert calculate_ideal_distance([], routes, AisleGraph()) == 0


@pytest.mark.parametrize("actual,optimal", [(10.0, 7.5), (10.0, 10.0), (3.0, 0.0), (120.0, 1.0)])
def test_path_efficiency_bounds(actual, optimal):
    e = calculate_enhanced_metrics(RouteMetrics(total_distance=actual), 10, optimal)
    assert 0 <= e.path_efficiency <= 100
    assert e.wasted_distance == pytest.approx(actual - optimal)


def test_enhanced_metrics_without_distance_or_time():
    e = calculate_enhanced_metrics(RouteMetrics(), 0, 5.0)
    assert e.path_efficiency == 0
    assert e.pick_rate == 0
    assert e.distance_per_unit == 0
    assert e.travel_speed == 0
    assert e.revisit_rate == 0
    assert e.wasted_distance == 0


def test_enhanced_metrics_rates():
    rm = RouteMetrics(total_distance=60.0, total_time_seconds=1800, location_crosses=1, aisle_crosses=1)
    e = calculate_enhanced_metrics(rm, 20, 45.0)
    assert e.pick_rate == pytest.approx(40.0)
    assert e.distance_per_unit == pytest.approx(3.0)
    assert e.path_efficiency == pytest.approx(75.0)
    assert e.travel_speed == pytest.approx(2.0)
    assert e.revisit_rate == pytest.approx(10.0)


def test_metrics_batches_reuse_cache():
    slots = _slots((0, 0), (0, 100))
    routes = {f"W{i}": [_step(s) for s in slots] for i in range(7)}
    cache = {}
    batches = list(iter_wave_metrics(sorted(routes), routes, AisleGraph(), cache, batch_size=3))
    assert [len(b) for b in batches] == [3, 3, 1]
    assert set(cache) == set(routes)
    again = list(iter_wave_metrics(["W0"], routes, AisleGraph(), cache))
    assert again[0][0] is cache["W0"]


def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(65) == "1:05"
    assert format_time(3725) == "1:02:05"


def _metrics():
    return [
        WaveMetrics(wave_id="W1", units=4, total_distance=5.0, total_time_seconds=120),
        WaveMetrics(wave_id="W2", units=6, total_distance=10.0, total_time_seconds=60,
                    location_crosses=1, location_crosses_bay=1, aisle_crosses=1),
        WaveMetrics(wave_id="W3", units=1),
    ]


def test_comparison_table_flags():
    df = build_comparison_table(_metrics())
    assert list(df["Wave ID"]) == ["W1", "W2", "W3"]
    assert list(df["Best"]) == [True, False, False]
    assert list(df["Worst"]) == [False, True, False]
    assert list(df["Duration"]) == ["2:00", "1:00", "0:00"]
    assert list(df["Total Revisits"]) == [0, 3, 0]


def test_comparison_table_sort():
    df = build_comparison_table(_metrics())
    by_duration = sort_comparison_table(df, "Duration", ascending=False)
    assert list(by_duration["Wave ID"]) == ["W1", "W2", "W3"]
    by_distance = sort_comparison_table(df, "Distance (m)")
    assert list(by_distance["Wave ID"]) == ["W3", "W1", "W2"]
    with pytest.raises(ValueError):
        sort_comparison_table(df, "Nope")


def test_comparison_table_empty():
    df = build_comparison_table([])
    assert df.empty
    assert "Best" in df.columns and "Worst" in df.columns


def test_abnormal_waves():
    metrics = _metrics() + [WaveMetrics(wave_id="W4", aisle_crosses=2)]
    abnormal = find_abnormal_waves(metrics)
    assert set(abnormal) == {"W2", "W4"}
    assert abnormal["W2"] == {"slot_revisits": 1, "shelf_revisits": 1, "aisle_revisits": 1, "total": 3}
    assert set(find_abnormal_waves(metrics, aisle=False)) == {"W2"}


def test_hourly_pick_histogram():
    (a,) = _slots((0, 0))
    hour = 60 * MINUTE_MS
    routes = {
        "W1": [_step(a, 3 * hour + 15 * MINUTE_MS), _step(a, 3 * hour + 50 * MINUTE_MS)],
        "W2": [_step(a, 27 * hour), _step(a, None)],
    }
    hist = calculate_hourly_pick_data(["W1", "W2"], routes)
    assert len(hist) == 24
    assert hist[3] == 3
    assert sum(hist) == 3
    assert calculate_hourly_pick_data([], routes) == [0] * 24


def test_pick_time_summary():
    summary = pick_time_summary([10.0, 20.0, 30.0])
    assert summary["Picks Timed"] == 3
    assert summary["Mean (s)"] == pytest.approx(20.0)
    assert summary["Max (s)"] == 30.0
    assert pick_time_summary([])["Picks Timed"] == 0


def test_sku_pick_stats():
    a, b = _slots((0, 0), (100, 0))
    routes = {
        "W1": [_step(a, sku="X"), _step(b, sku="Y"), _step(a, sku="X")],
        "W2": [_step(a, sku="X"), _step(b)],
    }
    df = sku_pick_stats(["W1", "W2"], routes)
    assert df.to_dict("records") == [
        {"SKU": "X", "Pick Count": 3, "Waves": 2},
        {"SKU": "Y", "Pick Count": 1, "Waves": 1},
    ]
