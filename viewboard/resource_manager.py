"""
Resource Manager: Handles JSON-based storage for datasource components and saved views.

写操作直接在原始 JSON 条目上按 id 替换或追加，无法解析的条目原样保留。
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from viewboard.models import SavedView, StoredComponent

logger = logging.getLogger(__name__)

DATA_DIR = Path("data")


def _entry_id(item) -> Optional[str]:
    return item.get("id") if isinstance(item, dict) else None


class ResourceManager:
    """Manages stored components and saved views in JSON files."""

    def __init__(self, data_dir: Path = DATA_DIR):
        self.data_dir = Path(data_dir)
        self.components_file = self.data_dir / "components.json"
        self.views_file = self.data_dir / "views.json"

        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _read(self, path: Path) -> list:
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read {path.name}: {e}")
            return []
        return data if isinstance(data, list) else []

    def _write(self, path: Path, entries: list):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2, ensure_ascii=False)

    def _upsert(self, path: Path, item: BaseModel, entries: Optional[list] = None):
        """按 id 替换已有条目（保持原有顺序），否则追加。"""
        entries = self._read(path) if entries is None else entries
        dumped = item.model_dump(mode="json", by_alias=False)
        for i, entry in enumerate(entries):
            if _entry_id(entry) == dumped["id"]:
                entries[i] = dumped
                break
        else:
            entries.append(dumped)
        self._write(path, entries)

    def _remove(self, path: Path, item_id: str) -> bool:
        entries = self._read(path)
        remaining = [e for e in entries if _entry_id(e) != item_id]
        if len(remaining) == len(entries):
            return False
        self._write(path, remaining)
        return True

    # ── Components ───────────────────────────────────────

    def load_components(self) -> List[StoredComponent]:
        """Load all stored components; invalid entries are skipped."""
        components = []
        for item in self._read(self.components_file):
            try:
                components.append(StoredComponent.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid component {_entry_id(item)!r}: {e.error_count()} errors")
        return components

    def get_component(self, component_id: str) -> Optional[StoredComponent]:
        for c in self.load_components():
            if c.id == component_id:
                return c
        return None

    def save_component(self, component: StoredComponent) -> StoredComponent:
        """Create or update a component."""
        self._upsert(self.components_file, component)
        return component

    def delete_component(self, component_id: str) -> bool:
        return self._remove(self.components_file, component_id)

    # ── Views ────────────────────────────────────────────

    def load_views(self, entity_id: Optional[str] = None) -> List[SavedView]:
        """Load saved views, optionally only those of one entity."""
        views = []
        for item in self._read(self.views_file):
            try:
                view = SavedView.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Skipping invalid view {_entry_id(item)!r}: {e.error_count()} errors")
                continue
            if entity_id is None or view.entity_id == entity_id:
                views.append(view)
        return views

    def get_view(self, view_id: str) -> Optional[SavedView]:
        for v in self.load_views():
            if v.id == view_id:
                return v
        return None

    def get_default_view(self, entity_id: str) -> Optional[SavedView]:
        for v in self.load_views(entity_id):
            if v.is_default:
                return v
        return None

    def save_view(self, view: SavedView) -> SavedView:
        """
        Create or update a view.
        Saving a default view clears is_default on the entity's other views.
        """
        entries = self._read(self.views_file)
        if view.is_default:
            for entry in entries:
                if (
                    isinstance(entry, dict)
                    and entry.get("entity_id") == view.entity_id
                    and entry.get("id") != view.id
                    and entry.get("is_default")
                ):
                    entry["is_default"] = False
        self._upsert(self.views_file, view, entries)
        return view

    def delete_view(self, view_id: str) -> bool:
        return self._remove(self.views_file, view_id)
