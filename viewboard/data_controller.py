"""
数据控制器：基于 TinyDB 的 Entity 记录存储。
按 entity_id 查询、发布状态过滤、按创建时间倒序。
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tinydb import Query, TinyDB

from viewboard.config_loader import project_root

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntityStore:
    """TinyDB 记录操作封装。"""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = project_root() / "data" / "records.json"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = TinyDB(str(db_path), indent=2, ensure_ascii=False)
        self.records_table = self.db.table("records")
        logger.info(f"TinyDB 数据库已打开: {db_path}")

    # ── 写入 ──────────────────────────────────────────

    def insert_record(
        self,
        entity_id: str,
        data: dict[str, Any],
        is_published: bool = True,
        record_id: str | None = None,
        created_at: str | None = None,
    ) -> dict:
        """插入一条记录，返回存储后的记录。"""
        now = _now_iso()
        record = {
            "id": record_id or str(uuid.uuid4()),
            "entity_id": entity_id,
            "data": data,
            "is_published": is_published,
            "created_at": created_at or now,
            "updated_at": now,
        }
        self.records_table.insert(record)
        logger.debug(f"[{entity_id}] 记录已插入: {record['id']}")
        return record

    def update_record(self, record_id: str, data: dict[str, Any]) -> bool:
        """替换记录的 data 字段。"""
        Record = Query()
        updated = self.records_table.update(
            {"data": data, "updated_at": _now_iso()},
            Record.id == record_id,
        )
        return bool(updated)

    def set_published(self, record_id: str, is_published: bool) -> bool:
        """切换发布状态。"""
        Record = Query()
        updated = self.records_table.update(
            {"is_published": is_published, "updated_at": _now_iso()},
            Record.id == record_id,
        )
        return bool(updated)

    def delete_record(self, record_id: str) -> bool:
        Record = Query()
        return bool(self.records_table.remove(Record.id == record_id))

    # ── 查询 ──────────────────────────────────────────

    def get_record(self, record_id: str) -> dict | None:
        Record = Query()
        results = self.records_table.search(Record.id == record_id)
        return results[0] if results else None

    def list_records(self, entity_id: str, published_only: bool = False) -> list[dict]:
        """获取指定 Entity 的记录（按创建时间倒序）。"""
        Record = Query()
        cond = Record.entity_id == entity_id
        if published_only:
            cond = cond & (Record.is_published == True)  # noqa: E712
        records = self.records_table.search(cond)
        records.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return records

    # ── 管理 ──────────────────────────────────────────

    def close(self):
        """关闭数据库。"""
        self.db.close()
