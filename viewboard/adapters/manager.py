"""
适配器管理器：按数据源类型选择适配器。
"""

import logging
from typing import Dict

from viewboard.adapters.base import SourceAdapter
from viewboard.errors import SourceError
from viewboard.models import SourceType

logger = logging.getLogger(__name__)


class AdapterManager:
    """SourceType -> SourceAdapter 的注册表。"""

    def __init__(self, *adapters: SourceAdapter):
        self._adapters: Dict[SourceType, SourceAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: SourceAdapter):
        if adapter.source_type in self._adapters:
            logger.warning(f"覆盖已注册的适配器: {adapter.source_type.value}")
        self._adapters[adapter.source_type] = adapter

    def get_adapter(self, source_type: SourceType | str | None) -> SourceAdapter:
        try:
            adapter = self._adapters.get(SourceType(source_type))
        except ValueError:
            adapter = None
        if adapter is None:
            # str 枚举在 f-string 中会显示为 SourceType.XXX，这里取原始值
            raise SourceError(f"Unsupported data source type: {getattr(source_type, 'value', source_type)}")
        return adapter
