"""计数器 API（今天的计数 / 增加 / 清零）"""
from fastapi import APIRouter, Depends

from ..schemas import CounterSnapshot, IncrementRequest
from ..services import CounterServices
from .dependencies import get_services

router = APIRouter(prefix="/counter", tags=["counter"])


@router.get("/today", response_model=CounterSnapshot)
async def get_today(services: CounterServices = Depends(get_services)):
    """获取今天的计数"""
    return await services.counter_store.get_today()


@router.post("/increment", response_model=CounterSnapshot)
async def increment_today(
    req: IncrementRequest | None = None,
    services: CounterServices = Depends(get_services),
):
    """今天的计数 +amount（默认 1），返回累加后的权威值"""
    amount = req.amount if req is not None else 1
    return await services.counter_store.increment_today(amount)


@router.post("/reset", response_model=CounterSnapshot)
async def reset_today(services: CounterServices = Depends(get_services)):
    """今天清零（不写增量日志）"""
    return await services.counter_store.reset_today()
