from __future__ import annotations

import re
from typing import Any


class CounterError(Exception):
    """计数器核心的异常基类。"""


class InvalidAmount(CounterError, ValueError):
    """增量必须是正整数（在访问存储之前就拒绝）。"""

    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"amount must be a positive integer, got {amount!r}")


class InvalidDateKey(CounterError, ValueError):
    pass


class StorageError(CounterError):
    """存储层失败（I/O、约束、序列化）。抛出时事务已回滚，之前的状态保持不变。"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


_CONTROL_RE = re.compile(r"[\r\n\t]+")


def _sanitize_text(text: str, *, max_len: int) -> str:
    """把异常文本压缩成更适合日志/落盘的短字符串（避免换行、控制字符、超长）。"""
    if max_len <= 0:
        return ""
    cleaned = _CONTROL_RE.sub(" ", text).strip()
    if len(cleaned) > max_len:
        return f"{cleaned[:max_len]}…"
    return cleaned


def exception_summary(exc: BaseException, *, max_len: int = 200) -> str:
    """生成对外更安全的异常摘要：默认仅保留异常类型 + 截断后的消息。"""
    name = type(exc).__name__
    msg = _sanitize_text(str(exc), max_len=max_len)
    return f"{name}: {msg}" if msg else name
