"""
FastAPI 路由：暴露 REST API 供页面渲染层和编辑器调用。
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from viewboard.models import (
    DatasourceContent,
    Presentation,
    SavedView,
    SourceType,
    StoredComponent,
    ViewOptions,
    ViewType,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# 这些全局引用会在 main.py 中注入
_orchestrator = None
_resource_manager = None
_schema_registry = None
_entity_store = None


def init_api(orchestrator, resource_manager, schema_registry, entity_store):
    """注入全局依赖（由 main.py 调用）。"""
    global _orchestrator, _resource_manager, _schema_registry, _entity_store
    _orchestrator = orchestrator
    _resource_manager = resource_manager
    _schema_registry = schema_registry
    _entity_store = entity_store


class RecordCreate(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    is_published: bool = True


class ViewCreate(BaseModel):
    id: Optional[str] = None
    name: str
    view_options: ViewOptions = Field(default_factory=ViewOptions)
    is_default: bool = False


def _require_component(component_id: str) -> StoredComponent:
    component = _resource_manager.get_component(component_id)
    if component is None:
        raise HTTPException(404, f"组件 '{component_id}' 不存在")
    return component


def _require_entity(entity_id: str):
    entity = _schema_registry.get_entity(entity_id)
    if entity is None:
        raise HTTPException(404, f"Entity '{entity_id}' 不存在")
    return entity


def _view_options_for(content: DatasourceContent, view_id: Optional[str]) -> ViewOptions:
    """
    选择渲染使用的视图选项：
    显式指定的 view_id > 组件自身的选项 > Entity 的默认视图。
    """
    if view_id:
        view = _resource_manager.get_view(view_id)
        if view is None:
            raise HTTPException(404, f"View {view_id} not found")
        return view.view_options
    unset = content.view_options.model_dump() == ViewOptions().model_dump()
    if unset and content.data_source_type == SourceType.ENTITY and content.entity_id:
        default = _resource_manager.get_default_view(content.entity_id)
        if default is not None:
            return default.view_options
    return content.view_options


# ── 组件 ──────────────────────────────────────────────

@router.get("/components")
async def list_components() -> list[dict]:
    """获取所有数据源组件，包含会话状态。"""
    result = []
    for component in _resource_manager.load_components():
        state = _orchestrator.get_session_state(component.id)
        content = component.content
        result.append({
            "id": component.id,
            "name": component.name,
            "data_source_type": content.data_source_type.value if content.data_source_type else None,
            "source_id": content.source_id,
            "view_type": content.view_type.value,
            "status": state.status.value,
            "message": state.message,
        })
    return result


@router.get("/components/{component_id}")
async def get_component(component_id: str) -> StoredComponent:
    return _require_component(component_id)


@router.put("/components/{component_id}")
async def save_component(component_id: str, component: StoredComponent) -> StoredComponent:
    """创建或更新组件；数据源变化后需要调用 refresh。"""
    if component.id != component_id:
        raise HTTPException(400, "ID mismatch")
    return _resource_manager.save_component(component)


@router.delete("/components/{component_id}")
async def delete_component(component_id: str) -> dict:
    if _resource_manager.delete_component(component_id):
        _orchestrator.discard(component_id)
        return {"message": "Component deleted"}
    raise HTTPException(404, f"Component {component_id} not found")


@router.post("/components/{component_id}/refresh")
async def refresh_component(component_id: str, background_tasks: BackgroundTasks) -> dict:
    """后台重新加载组件的数据源。"""
    component = _require_component(component_id)
    background_tasks.add_task(_orchestrator.load_content, component.id, component.content)
    return {"message": f"已触发刷新: {component_id}"}


@router.get("/components/{component_id}/state")
async def get_component_state(component_id: str) -> dict:
    _require_component(component_id)
    return _orchestrator.get_session_state(component_id).summary()


@router.get("/components/{component_id}/render")
async def render_component(
    component_id: str,
    view_type: Optional[str] = None,
    view_id: Optional[str] = None,
) -> Presentation:
    """按组件配置渲染；view_type 参数可临时切换视图，view_id 应用一个保存的视图。"""
    component = _require_component(component_id)
    content = component.content
    options = _view_options_for(content, view_id)
    return _orchestrator.render(component_id, view_type or content.view_type, options)


@router.post("/preview")
async def preview(content: dict[str, Any]) -> Presentation:
    """编辑器预览：加载未保存的组件内容并渲染，不保留会话。"""
    parsed = DatasourceContent.from_raw(content)
    options = _view_options_for(parsed, None)
    session_id = f"preview-{uuid.uuid4().hex[:8]}"
    try:
        await _orchestrator.load_content(session_id, parsed)
        return _orchestrator.render_content(session_id, parsed, options)
    finally:
        _orchestrator.discard(session_id)


@router.get("/view-types")
async def list_view_types() -> list[str]:
    return [v.value for v in ViewType]


# ── Entity ────────────────────────────────────────────

@router.get("/entities")
async def list_entities() -> list[dict]:
    return [e.model_dump(mode="json") for e in _schema_registry.list_entities()]


@router.get("/entities/{entity_id}/fields")
async def get_entity_fields(entity_id: str) -> list[dict]:
    _require_entity(entity_id)
    return [f.model_dump(mode="json") for f in _schema_registry.get_fields(entity_id)]


@router.get("/entities/{entity_id}/records")
async def list_entity_records(entity_id: str, published_only: bool = False) -> list[dict]:
    _require_entity(entity_id)
    return _entity_store.list_records(entity_id, published_only=published_only)


@router.post("/entities/{entity_id}/records")
async def create_entity_record(entity_id: str, record: RecordCreate) -> dict:
    _require_entity(entity_id)
    return _entity_store.insert_record(entity_id, record.data, is_published=record.is_published)


# ── 保存的视图 ────────────────────────────────────────

@router.get("/entities/{entity_id}/views")
async def list_entity_views(entity_id: str) -> list[SavedView]:
    _require_entity(entity_id)
    return _resource_manager.load_views(entity_id)


@router.post("/entities/{entity_id}/views")
async def save_entity_view(entity_id: str, view: ViewCreate) -> SavedView:
    _require_entity(entity_id)
    saved = SavedView(
        id=view.id or uuid.uuid4().hex,
        entity_id=entity_id,
        name=view.name,
        view_options=view.view_options,
        is_default=view.is_default,
    )
    return _resource_manager.save_view(saved)


@router.delete("/views/{view_id}")
async def delete_view(view_id: str) -> dict:
    if _resource_manager.delete_view(view_id):
        return {"message": "View deleted"}
    raise HTTPException(404, f"View {view_id} not found")
