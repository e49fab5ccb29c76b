"""
Schema 注册表：管理 Entity 定义的 YAML 文件。
每个文件包含 entities 列表，字段声明带有确定的类型。
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from viewboard.models import FieldType

logger = logging.getLogger(__name__)


class EntityField(BaseModel):
    """Entity 中声明的字段。"""
    id: str
    name: str
    display_name: str = ""
    field_type: FieldType = FieldType.STRING
    is_required: bool = False
    default_value: Optional[str] = None
    position: int = 0


class EntitySchema(BaseModel):
    """用户自定义的记录类型。"""
    id: str
    name: str
    display_name: str = ""
    description: Optional[str] = None
    icon: Optional[str] = None
    is_published: bool = True
    fields: List[EntityField] = Field(default_factory=list)


class SchemaRegistry:
    """读取和维护 schema 目录下的 Entity 定义。"""

    def __init__(self, schema_dir: str | Path):
        self.schema_dir = Path(schema_dir)
        self.schema_dir.mkdir(parents=True, exist_ok=True)

    def _schema_files(self) -> List[Path]:
        files = list(self.schema_dir.glob("*.yaml")) + list(self.schema_dir.glob("*.yml"))
        return sorted(files)

    def _read_file(self, path: Path) -> List[EntitySchema]:
        try:
            with open(path, "r", encoding="utf-8") as fp:
                content = yaml.safe_load(fp)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"读取 schema 文件失败 {path}: {e}")
            return []
        if not content or "entities" not in content:
            return []

        entities = []
        for raw in content["entities"] or []:
            try:
                entities.append(EntitySchema.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"跳过无效的 Entity 定义 ({path.name}): {e.error_count()} 个错误")
        return entities

    def list_entities(self) -> List[EntitySchema]:
        """列出所有 Entity 定义。"""
        entities = []
        for f in self._schema_files():
            entities.extend(self._read_file(f))
        return entities

    def _find_entity_file(self, entity_id: str) -> Optional[Path]:
        """根据 entity id 查找对应的文件路径。"""
        for f in self._schema_files():
            if any(e.id == entity_id for e in self._read_file(f)):
                return f
        return None

    def get_entity(self, entity_id: str) -> Optional[EntitySchema]:
        """获取 Entity 定义，不存在返回 None。"""
        for entity in self.list_entities():
            if entity.id == entity_id:
                return entity
        return None

    def get_fields(self, entity_id: str) -> List[EntityField]:
        """获取 Entity 的字段声明（按 position 排序）。"""
        entity = self.get_entity(entity_id)
        if entity is None:
            return []
        return sorted(entity.fields, key=lambda f: f.position)

    def save_entity(self, entity: EntitySchema) -> EntitySchema:
        """创建或更新 Entity 定义。已存在时写回原文件。"""
        file_path = self._find_entity_file(entity.id) or self.schema_dir / f"{entity.id}.yaml"
        entities = [e for e in self._read_file(file_path) if e.id != entity.id] if file_path.exists() else []
        entities.append(entity)
        self._write_file(file_path, entities)
        return entity

    def delete_entity(self, entity_id: str) -> bool:
        """删除 Entity 定义；文件中没有其他 Entity 时删除文件。"""
        file_path = self._find_entity_file(entity_id)
        if file_path is None:
            return False
        remaining = [e for e in self._read_file(file_path) if e.id != entity_id]
        if remaining:
            self._write_file(file_path, remaining)
        else:
            file_path.unlink()
        return True

    def _write_file(self, path: Path, entities: List[EntitySchema]):
        data = {"entities": [e.model_dump(mode="json") for e in entities]}
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
