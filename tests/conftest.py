"""
Shared fixtures for ViewBoard tests.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from viewboard.models import DataRecord, FieldInfo, FieldType  # noqa: E402


def make_field(name: str, field_type: FieldType = FieldType.STRING, field_id: str | None = None) -> FieldInfo:
    return FieldInfo(id=field_id or f"f-{name}", name=name, display_name=name.title(), field_type=field_type)


def make_records(*rows: dict, created_at: str | None = None) -> list[DataRecord]:
    return [
        DataRecord(id=f"r{i}", data=row, is_published=True, created_at=created_at)
        for i, row in enumerate(rows)
    ]


SCHEMA_YAML = """
entities:
  - id: tasks
    name: tasks
    display_name: Tasks
    fields:
      - id: f-status
        name: status
        display_name: Status
        field_type: DropDown
        position: 1
      - id: f-title
        name: title
        display_name: Title
        field_type: String
        position: 0
      - id: f-due
        name: due
        display_name: Due
        field_type: Date
        position: 2
"""


@pytest.fixture
def schema_dir(tmp_path):
    path = tmp_path / "config" / "entities"
    path.mkdir(parents=True)
    (path / "tasks.yaml").write_text(SCHEMA_YAML, encoding="utf-8")
    return path


@pytest.fixture
def entity_store(tmp_path):
    from viewboard.data_controller import EntityStore

    store = EntityStore(tmp_path / "data" / "records.json")
    yield store
    store.close()
