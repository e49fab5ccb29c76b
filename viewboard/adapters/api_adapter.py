"""
API 适配器：调用 HTTP 代理执行服务，解包响应体并定位记录数组。

定位顺序：响应体本身是数组 -> 配置的 JSONPath -> data / results / items / records
-> 整个响应体作为单条记录。
"""

import json
import logging
from typing import Any

from jsonpath_ng.ext import parse as jp_parse

from viewboard.adapters.base import SourceAdapter, as_row, now_iso, text_or_none
from viewboard.errors import ExecutionError, InvalidResponseError, ServiceCallError, SourceError
from viewboard.inference import infer_fields
from viewboard.models import DataRecord, DataSourceResult, SchemaSource, SourceType

logger = logging.getLogger(__name__)

WRAPPER_KEYS = ("data", "results", "items", "records")


class ApiAdapter(SourceAdapter):
    source_type = SourceType.API

    def __init__(self, api_service, record_paths: dict[str, str] | None = None):
        self._service = api_service
        self._record_paths = {}
        for request_id, expr in (record_paths or {}).items():
            try:
                self._record_paths[request_id] = jp_parse(expr)
            except Exception as e:
                logger.error(f"[{request_id}] 无效的 JSONPath '{expr}': {e}")

    def _from_record_path(self, request_id: str, body: Any) -> list | None:
        expr = self._record_paths.get(request_id)
        if expr is None or body is None:
            return None
        matches = expr.find(body)
        if not matches:
            logger.debug(f"[{request_id}] JSONPath 无匹配，使用默认定位")
            return None
        if len(matches) == 1 and isinstance(matches[0].value, list):
            return matches[0].value
        return [m.value for m in matches]

    def locate_records(self, request_id: str, body: Any) -> list:
        """在响应体中定位记录数组。"""
        if isinstance(body, list):
            return body

        located = self._from_record_path(request_id, body)
        if located is not None:
            return located

        if isinstance(body, dict):
            for key in WRAPPER_KEYS:
                if isinstance(body.get(key), list):
                    return body[key]
            # 单个对象包装为数组
            return [body]
        return []

    async def fetch(self, request_id: str) -> DataSourceResult:
        try:
            envelope = await self._service.execute(request_id)
        except ServiceCallError as e:
            raise SourceError(f"Failed to execute API request: {e.message}", request_id) from e

        if not envelope.get("success"):
            raise ExecutionError(envelope.get("error") or "Failed to execute API request", request_id)

        body = envelope.get("body")
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except json.JSONDecodeError as e:
                raise InvalidResponseError("API response is not valid JSON", request_id) from e

        rows = [as_row(r) for r in self.locate_records(request_id, body)]

        if rows:
            fields = infer_fields(rows[0], split_camel=True)
            schema_source = SchemaSource.INFERRED
        else:
            fields = []
            schema_source = SchemaSource.NONE

        loaded_at = now_iso()
        data = [
            DataRecord(
                id=text_or_none(row.get("id") or row.get("_id")) or f"api-record-{index}",
                data=row,
                is_published=True,
                created_at=text_or_none(row.get("created_at") or row.get("createdAt")) or loaded_at,
            )
            for index, row in enumerate(rows)
        ]

        logger.debug(f"[{request_id}] API 返回 {len(data)} 条记录")
        return DataSourceResult(data=data, fields=fields, schema_source=schema_source)
