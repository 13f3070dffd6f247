import pytest

from batching import guess_column_mapping
from models import ColumnMapping, Granularity
from simulation import AnalysisSession


@pytest.fixture
def session(slots_df, routes_df):
    s = AnalysisSession()
    s.load_slots(slots_df)
    index = s.load_routes(routes_df, guess_column_mapping(routes_df.columns))
    s.select_waves(index.wave_ids)
    s.prepare(chunk_size=2)
    return s


def test_load_reports_matches(session):
    assert session.index.matched == 7
    assert session.index.wave_ids == ["W1", "W2"]
    assert session.max_route_steps == 7
    assert [(e.wave_id, e.route_index) for e in session.timeline[:3]] == [("W1", 0), ("W2", 0), ("W1", 1)]


def test_playback_totals(session):
    rm = session.run_to_end()
    assert session.is_finished
    assert session.current_step == 7
    assert rm.location_crosses == 0
    assert rm.location_crosses_bay == 1
    assert rm.aisle_crosses == 1
    assert rm.total_time_seconds == pytest.approx(140)
    assert sorted(rm.pick_times) == [30, 30, 40, 40]
    assert (rm.slowest_pick_time, rm.slowest_pick_location) == (40, "Z1-0105-01")
    assert (rm.fastest_pick_time, rm.fastest_pick_location) == (30, "Z1-0103-01")
    (bay_event,) = session.revisit_events[Granularity.BAY]
    assert (bay_event.wave_id, bay_event.key, bay_event.first_visit, bay_event.revisit) == ("W1", "Z1-0101", 1, 4)


def test_playback_matches_per_wave_metrics(session):
    rm = session.run_to_end()
    waves = [session.wave_metrics(w) for w in session.selected_waves]
    assert rm.total_distance == pytest.approx(sum(m.total_distance for m in waves))
    assert rm.total_time_seconds == pytest.approx(sum(m.total_time_seconds for m in waves))
    assert rm.location_crosses == sum(m.location_crosses for m in waves)
    assert rm.location_crosses_bay == sum(m.location_crosses_bay for m in waves)
    assert rm.aisle_crosses == sum(m.aisle_crosses for m in waves)
    for m in waves:
        mine = [e for e in session.revisit_events[Granularity.AISLE] if e.wave_id == m.wave_id]
        assert len(mine) == m.aisle_crosses


def test_seek_replays_exactly_target_steps(session):
    for _ in range(3):
        session.step_forward()
    stepped = (session.current_step, session.route_metrics.total_distance, list(session.route_metrics.pick_times))

    session.run_to_end()
    session.seek(3)
    assert (session.current_step, session.route_metrics.total_distance, session.route_metrics.pick_times) == stepped

    session.seek(99)
    assert session.current_step == 7
    session.seek(0)
    assert session.current_step == 0
    assert session.route_metrics.total_distance == 0
    assert all(not events for events in session.revisit_events.values())


def test_step_forward_past_end(session):
    session.run_to_end()
    assert session.step_forward() is None


def test_single_current_slot(session):
    session.step_forward()
    session.step_forward()
    current = [loc for loc, note in session.annotations.items() if note.is_current]
    assert current == ["Z1-0105"]
    session.reset_playback()
    assert not any(note.is_current for note in session.annotations.values())


def test_heatmap_after_prepare(session):
    assert session.heatmap.frequencies["Z1-0105-01"] == 2
    assert session.annotations["Z1-0101"].visit_count == 1
    assert session.annotations["Z1-0105"].is_on_route


def test_selection_resets_state(session):
    session.run_to_end()
    session.select_waves(["W2", "nope"])
    assert session.selected_waves == ["W2"]
    assert session.current_step == 0
    assert session.timeline == []
    assert session.heatmap.frequencies == {}
    assert session.annotations == {}
    session.prepare()
    assert session.max_route_steps == 3


def test_stale_preparation_is_dropped(session):
    chunks = session.prepare_routes(chunk_size=1)
    next(chunks)
    session.select_waves(["W1"])
    list(chunks)
    assert session.timeline == []
    assert session.heatmap.frequencies == {}
    session.prepare()
    assert session.max_route_steps == 4


def test_reloading_routes_clears_cache(session, routes_df):
    session.wave_metrics("W1")
    assert "W1" in session.metrics_cache
    session.load_routes(routes_df, guess_column_mapping(routes_df.columns))
    assert session.metrics_cache == {}
    assert session.selected_waves == []


def test_routes_need_slots_and_mapping(routes_df):
    s = AnalysisSession()
    with pytest.raises(ValueError):
        s.load_routes(routes_df, guess_column_mapping(routes_df.columns))
    with pytest.raises(ValueError):
        s.load_routes(routes_df, ColumnMapping(location="location"))


def test_empty_selection_is_zero(slots_df, routes_df):
    s = AnalysisSession()
    s.load_slots(slots_df)
    s.load_routes(routes_df, guess_column_mapping(routes_df.columns))
    s.prepare()
    assert s.max_route_steps == 0
    assert s.run_to_end().total_distance == 0
    assert s.ideal_distance() == 0
    assert s.enhanced_metrics().path_efficiency == 0
    assert s.comparison_table().empty
    assert s.hourly_pick_data() == [0] * 24


def test_aggregates(session):
    session.run_to_end()
    enhanced = session.enhanced_metrics()
    assert enhanced.revisit_rate == pytest.approx(2 / 7 * 100)
    assert enhanced.optimal_distance == session.ideal_distance()
    assert 0 < enhanced.optimal_distance
    table = session.comparison_table()
    assert list(table["Wave ID"]) == ["W1", "W2"]
    assert session.abnormal_waves() == {
        "W1": {"slot_revisits": 0, "shelf_revisits": 1, "aisle_revisits": 1, "total": 2},
    }
    assert session.hourly_pick_data()[8] == 6
    assert session.hourly_pick_data()[10] == 1
    skus = session.sku_stats()
    assert skus.iloc[0].to_dict() == {"SKU": "SKU-2", "Pick Count": 3, "Waves": 2}
    paths = session.polylines()
    assert paths["W1"][0] == (25.0, 60.0)


def test_search_highlights(session):
    hits = session.search("0207")
    assert [s.location for s in hits] == ["Z1-0207"]
    assert session.annotations["Z1-0207"].highlighted
    session.search("0101")
    assert not session.annotations["Z1-0207"].highlighted
    assert session.annotations["Z1-0101"].highlighted


def test_repeated_wave_ids_selected_once(session):
    session.select_waves(["W1", "W2", "W1"])
    assert session.selected_waves == ["W1", "W2"]
    session.prepare()
    assert session.max_route_steps == 7
    assert session.heatmap.frequencies["Z1-0101-02"] == 1
    rm = session.run_to_end()
    assert rm.location_crosses_bay == 1
    assert len(rm.pick_times) == 4
    assert list(session.comparison_table()["Wave ID"]) == ["W1", "W2"]
    assert session.enhanced_metrics().revisit_rate == pytest.approx(2 / 7 * 100)


def test_metric_batches_for_other_waves(session):
    session.select_waves(["W2"])
    batches = list(session.comparison_batches(wave_ids=["W1", "W2"]))
    assert [m.wave_id for batch in batches for m in batch] == ["W1", "W2"]
    assert set(session.metrics_cache) == {"W1", "W2"}
    assert [m.wave_id for batch in session.comparison_batches() for m in batch] == ["W2"]
