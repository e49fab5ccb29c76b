"""
渲染会话运行时状态定义。
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from viewboard.models import DataSourceResult, SourceType


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class SessionState(BaseModel):
    """
    一个渲染会话的状态。
    generation 每次发起加载时递增，用于丢弃过期的加载结果。
    """
    session_id: str
    status: LoadStatus = LoadStatus.IDLE
    message: Optional[str] = None
    source_type: Optional[SourceType] = None
    source_id: Optional[str] = None
    generation: int = 0
    last_updated: float = 0.0

    # 仅在 READY 时有值；新的加载会完整替换
    result: Optional[DataSourceResult] = None

    def summary(self) -> dict:
        """不含记录数据的状态摘要。"""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "message": self.message,
            "source_type": self.source_type.value if self.source_type else None,
            "source_id": self.source_id,
            "generation": self.generation,
            "last_updated": self.last_updated,
            "record_count": len(self.result.data) if self.result else 0,
            "field_count": len(self.result.fields) if self.result else 0,
        }
