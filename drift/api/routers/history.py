"""
/history — the focus history log and the analytics the dashboard shows.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ...api.schemas import HistoryEntryOut, HistorySummaryOut, InsightsOut, WeeklyOut
from ...telemetry import analytics

router = APIRouter(prefix="/history", tags=["history"])


def _get_pipeline(request: Request):
    return request.app.state.pipeline


async def _points(pipeline) -> List[analytics.FocusPoint]:
    return analytics.to_focus_points(await pipeline.history.entries())


@router.get("", response_model=List[HistoryEntryOut])
async def read_history(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    pipeline=Depends(_get_pipeline),
):
    entries = await pipeline.history.entries(limit=limit)
    return [e.to_dict() for e in entries]


@router.delete("")
async def clear_history(pipeline=Depends(_get_pipeline)):
    """Clear all data: history and focus streak."""
    await pipeline.clear_data()
    return {"status": "cleared"}


@router.get("/summary", response_model=HistorySummaryOut)
async def summary(pipeline=Depends(_get_pipeline)):
    points = await _points(pipeline)
    return HistorySummaryOut(
        daily_average=analytics.daily_average(points, date.today()),
        average_focus=analytics.average_focus(points),
        current_status=analytics.current_status(points),
        sample_count=len(points),
        streak=pipeline.controller.streak,
    )


@router.get("/weekly", response_model=WeeklyOut)
async def weekly(pipeline=Depends(_get_pipeline)):
    return analytics.last_7_days(await _points(pipeline))


@router.get("/insights", response_model=InsightsOut)
async def insights(pipeline=Depends(_get_pipeline)):
    points = await _points(pipeline)
    peak = analytics.peak_window(points)
    return InsightsOut(
        sweet_spot_minutes=analytics.sweet_spot_minutes(points),
        peak_window=list(peak) if peak else None,
        peak_window_label=analytics.format_peak(peak),
    )
