from __future__ import annotations
import asyncio
from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from kpis import sort_comparison_table
from models import ColumnMapping, Granularity, HEATMAP_CHUNK_SIZE, RevisitEvent
from simulation import AnalysisSession
from storage import validate_slot_frame


def parse_wave_list(waves: str | None) -> List[str]:
    if not waves:
        return []
    return [w.strip() for w in waves.split(",") if w.strip()]


def build_session(slots_df: pd.DataFrame, routes_df: pd.DataFrame, mapping: ColumnMapping,
                  waves: List[str] | None = None) -> AnalysisSession:
    session = AnalysisSession()
    session.load_slots(validate_slot_frame(slots_df))
    index = session.load_routes(routes_df, mapping)
    session.select_waves(waves or index.wave_ids)
    return session


async def prepare_cooperatively(session: AnalysisSession, chunk_size: int = HEATMAP_CHUNK_SIZE) -> None:
    # hand the loop back between heatmap chunks
    for _ in session.prepare_routes(chunk_size):
        await asyncio.sleep(0)


async def play_cooperatively(session: AnalysisSession, chunk_size: int = HEATMAP_CHUNK_SIZE) -> None:
    while not session.is_finished:
        for _ in range(chunk_size):
            if session.step_forward() is None:
                break
        await asyncio.sleep(0)


async def warm_wave_metrics(session: AnalysisSession) -> None:
    # every known wave: abnormal-wave listing covers unselected ones too
    for _ in session.comparison_batches(wave_ids=session.index.wave_ids):
        await asyncio.sleep(0)


def _event_record(e: RevisitEvent) -> Dict[str, Any]:
    return {"wave": e.wave_id, "key": e.key, "first_visit": e.first_visit, "revisit": e.revisit}


def session_payload(session: AnalysisSession) -> Dict[str, Any]:
    waves = [m for batch in session.comparison_batches() for m in batch]
    route_metrics = asdict(session.route_metrics)
    route_metrics["avg_pick_time"] = session.route_metrics.avg_pick_time
    return {
        "wave_ids": session.index.wave_ids,
        "matched": session.index.matched,
        "selected_waves": session.selected_waves,
        "aisles": {"vertical": list(session.graph.vertical), "horizontal": list(session.graph.horizontal)},
        "total_steps": session.max_route_steps,
        "waves": [{**asdict(m), "total_revisits": m.total_revisits} for m in waves],
        "route_metrics": route_metrics,
        "enhanced_metrics": asdict(session.enhanced_metrics()),
        "revisits": {g.value: [_event_record(e) for e in session.revisit_events[g]] for g in Granularity},
        "abnormal_waves": session.abnormal_waves(),
        "heatmap": dict(session.heatmap.frequencies),
        "hourly_picks": session.hourly_pick_data(),
        "skus": session.sku_stats().to_dict("records"),
        "paths": {w: [list(p) for p in pts] for w, pts in session.polylines().items()},
    }


def comparison_csv(session: AnalysisSession, sort_by: str = "Wave ID", ascending: bool = True) -> str:
    table = sort_comparison_table(session.comparison_table(), sort_by, ascending)
    return table.drop(columns=["Best", "Worst"]).to_csv(index=False)
