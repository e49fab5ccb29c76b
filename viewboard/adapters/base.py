"""
数据源适配器基类与公共工具。
每个适配器把各自的数据源 ID 转换为统一的 DataSourceResult。
"""

from datetime import datetime, timezone
from typing import Any

from viewboard.inference import to_text
from viewboard.models import DataSourceResult, SourceType


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def as_row(value: Any) -> dict:
    """非对象行包装为 {"value": ...}，保证每条记录都有 data 字典。"""
    return value if isinstance(value, dict) else {"value": value}


def text_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else to_text(value)


class SourceAdapter:
    """
    适配器协议：fetch(source_id) -> DataSourceResult。
    任何上游失败都抛出 SourceError（或子类），不返回部分结果。
    """

    source_type: SourceType
    # 是否有预先声明的 schema（否则从首行推断）
    has_declared_schema: bool = False

    async def fetch(self, source_id: str) -> DataSourceResult:
        raise NotImplementedError
