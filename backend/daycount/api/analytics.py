"""统计 API（日合计 / 最近 N 天 / 按小时分桶）"""
from fastapi import APIRouter, Depends, Query, Request

from ..schemas import DayTotal, HourBucket
from ..services import CounterServices
from .dependencies import get_services

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/daily", response_model=list[DayTotal])
async def get_daily_totals(services: CounterServices = Depends(get_services)):
    """所有日期的合计（按日期升序）"""
    return await services.analytics.daily_totals()


@router.get("/recent", response_model=list[DayTotal])
async def get_recent_totals(
    request: Request,
    days: int | None = Query(default=None, ge=1, le=366),
    services: CounterServices = Depends(get_services),
):
    """最近 N 天（默认取配置 RECENT_DAYS）"""
    return await services.analytics.recent_totals(days or request.app.state.settings.recent_days)


@router.get("/hourly", response_model=list[HourBucket])
async def get_hourly_trend(
    date: str | None = Query(default=None, description="YYYY-MM-DD，默认今天"),
    services: CounterServices = Depends(get_services),
):
    """某一天 24 个小时的增量分布"""
    return await services.analytics.hourly_trend(date)
