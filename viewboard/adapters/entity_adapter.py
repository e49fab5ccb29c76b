"""
Entity 适配器：读取已声明的 schema 和已发布的记录。
字段类型直接取自 schema，不做推断。
"""

import asyncio
import logging

from viewboard.adapters.base import SourceAdapter, text_or_none
from viewboard.data_controller import EntityStore
from viewboard.errors import SchemaNotFoundError, SourceError
from viewboard.models import DataRecord, DataSourceResult, FieldInfo, SchemaSource, SourceType
from viewboard.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)


class EntityAdapter(SourceAdapter):
    source_type = SourceType.ENTITY
    has_declared_schema = True

    def __init__(self, registry: SchemaRegistry, store: EntityStore):
        self._registry = registry
        self._store = store

    async def fetch(self, entity_id: str) -> DataSourceResult:
        entity = await asyncio.to_thread(self._registry.get_entity, entity_id)
        if entity is None:
            raise SchemaNotFoundError("Failed to load entity: Entity not found in schema", entity_id)
        declared = sorted(entity.fields, key=lambda f: f.position)

        try:
            rows = await asyncio.to_thread(self._store.list_records, entity_id, True)
        except Exception as e:
            logger.error(f"[{entity_id}] 读取记录失败: {e}")
            raise SourceError(f"Failed to load records: {e}", entity_id) from e

        fields = [
            FieldInfo(
                id=f.id,
                name=f.name,
                display_name=f.display_name or f.name,
                field_type=f.field_type,
            )
            for f in declared
        ]

        data = [
            DataRecord(
                id=str(row["id"]),
                data=row.get("data") or {},
                is_published=row.get("is_published") or None,
                created_at=text_or_none(row.get("created_at")),
            )
            for row in rows
        ]

        logger.debug(f"[{entity_id}] 已加载 {len(data)} 条记录, {len(fields)} 个字段")
        return DataSourceResult(data=data, fields=fields, schema_source=SchemaSource.DECLARED)
