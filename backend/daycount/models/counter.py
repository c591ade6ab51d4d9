from sqlalchemy import Column, Integer, String

from ..database import Base


class DailyCounter(Base):
    """每日计数表 - 每个本地日期一行，只通过原子加法（或清零）修改，从不删除。"""

    __tablename__ = "counters"

    # YYYY-MM-DD，字符串序即时间序
    date = Column(String(10), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
