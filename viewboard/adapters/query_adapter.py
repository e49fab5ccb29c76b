"""
Query 适配器：调用 query 执行服务，从结果首行推断字段。
没有结果行时退回到 settings.selected_fields 声明。
"""

import logging
from typing import Any

from viewboard.adapters.base import SourceAdapter, as_row, now_iso, text_or_none
from viewboard.errors import ExecutionError, ServiceCallError, SourceError
from viewboard.inference import infer_field_type, infer_fields
from viewboard.models import DataRecord, DataSourceResult, FieldInfo, SchemaSource, SourceType

logger = logging.getLogger(__name__)


def _fields_from_settings(selected_fields: list[Any]) -> list[FieldInfo]:
    """没有样本行时按 selected_fields 合成字段，类型统一为 String。"""
    fields = []
    for index, decl in enumerate(selected_fields):
        decl = decl if isinstance(decl, dict) else {}
        name = decl.get("name") or decl.get("field_name") or f"field_{index}"
        display_name = (
            decl.get("display_name")
            or decl.get("name")
            or decl.get("field_name")
            or f"Field {index + 1}"
        )
        fields.append(FieldInfo(
            id=f"field-{index}",
            name=name,
            display_name=display_name,
            field_type=infer_field_type(None),
        ))
    return fields


class QueryAdapter(SourceAdapter):
    source_type = SourceType.QUERY

    def __init__(self, query_service):
        self._service = query_service

    async def fetch(self, query_id: str) -> DataSourceResult:
        try:
            envelope = await self._service.execute(query_id)
        except ServiceCallError as e:
            raise SourceError(f"Failed to execute query: {e.message}", query_id) from e

        if not envelope.get("success"):
            raise ExecutionError(envelope.get("error") or "Failed to execute query", query_id)

        results = envelope.get("data") or []
        if not isinstance(results, list):
            results = []
        rows = [as_row(r) for r in results]
        settings = envelope.get("settings") or {}

        if rows:
            fields = infer_fields(rows[0])
            schema_source = SchemaSource.INFERRED
        elif settings.get("selected_fields"):
            fields = _fields_from_settings(settings["selected_fields"])
            schema_source = SchemaSource.SETTINGS
        else:
            fields = []
            schema_source = SchemaSource.NONE

        loaded_at = now_iso()
        data = [
            DataRecord(
                id=text_or_none(row.get("id")) or f"record-{index}",
                data=row,
                # query 没有发布状态
                is_published=True,
                created_at=text_or_none(row.get("created_at")) or loaded_at,
            )
            for index, row in enumerate(rows)
        ]

        logger.debug(f"[{query_id}] query 返回 {len(data)} 行, 字段来源: {schema_source.value}")
        return DataSourceResult(data=data, fields=fields, schema_source=schema_source)
