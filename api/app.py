from __future__ import annotations
from dataclasses import asdict
from fastapi import FastAPI, UploadFile, File, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
import pandas as pd
import io

from models import HEATMAP_CHUNK_SIZE
from batching import resolve_column_mapping
from .runner import (
    build_session,
    comparison_csv,
    parse_wave_list,
    play_cooperatively,
    prepare_cooperatively,
    session_payload,
    warm_wave_metrics,
)

app = FastAPI(title="Wave Route API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _read_csv(f: UploadFile) -> pd.DataFrame:
    # cells stay text: "01" aisles and ids must not turn into numbers
    return pd.read_csv(io.BytesIO(f.file.read()), dtype=str, keep_default_na=False)


async def _analysis_session(slots, routes, wave_col, time_col, location_col, aisle_col, sku_col, waves, chunk_size):
    try:
        slots_df = _read_csv(slots)
        routes_df = _read_csv(routes)
    except pd.errors.EmptyDataError:
        raise HTTPException(status_code=400, detail="Empty file!")
    mapping = resolve_column_mapping(
        routes_df.columns,
        wave=wave_col, time=time_col, location=location_col, aisle=aisle_col, sku=sku_col,
    )
    try:
        session = build_session(slots_df, routes_df, mapping, parse_wave_list(waves))
        if session.index.wave_ids:
            await prepare_cooperatively(session, chunk_size)
            await play_cooperatively(session, chunk_size)
            await warm_wave_metrics(session)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not session.index.wave_ids:
        raise HTTPException(status_code=400, detail="No valid routes: no route row matched a known slot")
    return session


@app.post("/api/columns")
async def api_columns(routes: UploadFile = File(...)):
    try:
        routes_df = _read_csv(routes)
    except pd.errors.EmptyDataError:
        raise HTTPException(status_code=400, detail="Empty file!")
    mapping = resolve_column_mapping(routes_df.columns)
    return {
        "columns": list(routes_df.columns),
        "mapping": asdict(mapping),
        "rows": len(routes_df),
        "preview": routes_df.head(5).to_dict("records"),
    }


@app.post("/api/analyze")
async def api_analyze(
    slots: UploadFile = File(...),
    routes: UploadFile = File(...),
    wave_col: str | None = Form(None),
    time_col: str | None = Form(None),
    location_col: str | None = Form(None),
    aisle_col: str | None = Form(None),
    sku_col: str | None = Form(None),
    waves: str | None = Form(None),
    chunk_size: int = Form(HEATMAP_CHUNK_SIZE),
):
    session = await _analysis_session(slots, routes, wave_col, time_col, location_col, aisle_col, sku_col,
                                      waves, chunk_size)
    return JSONResponse(session_payload(session))


@app.post("/api/export/comparison")
async def api_export_comparison(
    slots: UploadFile = File(...),
    routes: UploadFile = File(...),
    wave_col: str | None = Form(None),
    time_col: str | None = Form(None),
    location_col: str | None = Form(None),
    aisle_col: str | None = Form(None),
    sku_col: str | None = Form(None),
    waves: str | None = Form(None),
    sort_by: str = Form("Wave ID"),
    ascending: bool = Form(True),
):
    session = await _analysis_session(slots, routes, wave_col, time_col, location_col, aisle_col, sku_col,
                                      waves, HEATMAP_CHUNK_SIZE)
    try:
        csv_text = comparison_csv(session, sort_by, ascending)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PlainTextResponse(content=csv_text, media_type="text/csv")
