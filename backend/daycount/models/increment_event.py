from sqlalchemy import Column, Index, Integer, String

from ..database import Base


class IncrementEvent(Base):
    """增量事件表 - 每次成功的 increment 调用追加一条（整笔 amount 记一条），用于按小时统计。"""

    __tablename__ = "increments"
    __table_args__ = (
        Index("idx_increments_date_hour", "date", "hour"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(10), nullable=False, index=True)
    hour = Column(Integer, nullable=False)
    # UTC ISO-8601 字符串（与 document 后端逐字节一致）
    timestamp = Column(String(40), nullable=False)
    amount = Column(Integer, nullable=False)
