from pydantic import BaseModel


class DayTotal(BaseModel):
    date: str
    count: int


class HourBucket(BaseModel):
    """当天某个小时（0-23）的增量合计。"""

    hour: int
    count: int
