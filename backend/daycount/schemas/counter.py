from pydantic import BaseModel, StrictInt


class CounterSnapshot(BaseModel):
    """某一天计数器的权威值（increment / reset / today 的返回结果）。"""

    date: str
    count: int


class IncrementRequest(BaseModel):
    # 严格整数："2"、2.0、true 一律 422；>0 校验交给 CounterStore 统一抛 InvalidAmount
    amount: StrictInt = 1
