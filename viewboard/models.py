"""
Data models for normalized data sources, view configurations and stored resources.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# ── Enums ─────────────────────────────────────────────

class FieldType(str, Enum):
    """Semantic field types. Values match the stored schema spelling."""
    STRING = "String"
    INTEGER = "Interger"
    DATE = "Date"
    DATETIME = "DateTime"
    DECIMAL = "Decimal"
    TIMESPAN = "TimeSpan"
    IMAGE = "Image"
    DROPDOWN = "DropDown"
    RELATION = "Relation"
    BOOLEAN = "Boolean"
    TEXTAREA = "TextArea"
    DB_COMPUTED = "DBComputed"
    FORMULA = "Formula"
    FILE = "File"
    TIME = "Time"
    QRCODE = "QRcode"
    LIST = "List"
    HTML_EDITOR = "HTMLEditor"
    BUTTON = "Button"
    ICON = "Icon"
    PASSWORD = "Password"
    INT64 = "Int64"
    CHIPS = "Chips"
    IMAGE_SLIDER = "ImageSlider"


NUMERIC_FIELD_TYPES = frozenset({FieldType.INTEGER, FieldType.DECIMAL, FieldType.INT64})
DATE_FIELD_TYPES = frozenset({FieldType.DATE, FieldType.DATETIME})


class SourceType(str, Enum):
    ENTITY = "entity"
    QUERY = "query"
    API = "api"


class ViewType(str, Enum):
    TABLE = "table"
    CARD = "card"
    KANBAN = "kanban"
    GALLERY = "gallery"
    LIST = "list"
    TIMELINE = "timeline"
    CALENDAR = "calendar"
    GANTT = "gantt"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def coerce(cls, value: Any) -> "SortOrder":
        """空值为升序；除 asc 外（不区分大小写）一律视为降序。"""
        value = getattr(value, "value", value)
        if value is None or value == "":
            return cls.ASC
        return cls.ASC if str(value).strip().lower() == cls.ASC.value else cls.DESC


class SchemaSource(str, Enum):
    """Where the field list of a result came from."""
    DECLARED = "declared"  # Entity schema
    INFERRED = "inferred"  # 从第一行推断
    SETTINGS = "settings"  # query selected_fields
    NONE = "none"


# ── Normalized data ───────────────────────────────────

class FieldInfo(BaseModel):
    """One named, typed attribute of a normalized record."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Field handle; field-<index> for schemaless sources")
    name: str = Field(description="Key used to read the value from record.data")
    display_name: str = ""
    field_type: FieldType = FieldType.STRING


class DataRecord(BaseModel):
    """A normalized record. `data` holds the raw values exactly as returned."""
    model_config = ConfigDict(frozen=True)

    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_published: Optional[bool] = None
    created_at: Optional[str] = None


class DataSourceResult(BaseModel):
    """Contract between source adapters and everything downstream."""
    data: List[DataRecord] = Field(default_factory=list)
    fields: List[FieldInfo] = Field(default_factory=list)
    schema_source: SchemaSource = SchemaSource.NONE

    @property
    def has_schema(self) -> bool:
        return self.schema_source != SchemaSource.NONE


# ── View configuration ────────────────────────────────

class _CamelModel(BaseModel):
    """Accepts both camelCase (stored content) and snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Filter(_CamelModel):
    field: str
    operator: str = FilterOperator.EQUALS.value
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _value_as_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


class DisplayField(_CamelModel):
    field_id: str
    position: int = 0

    @field_validator("position", mode="before")
    @classmethod
    def _null_position(cls, v: Any) -> Any:
        return 0 if v is None else v


def _valid_display_fields(v: Any) -> List[DisplayField]:
    """逐条校验 displayFields，只丢弃无效条目。"""
    if not isinstance(v, list):
        return []
    kept = []
    for item in v:
        try:
            kept.append(DisplayField.model_validate(item))
        except ValidationError:
            logger.warning(f"忽略无效的 displayFields 条目: {item!r}")
    return kept


class TableConfig(_CamelModel):
    view_type: Literal["table"] = Field(default="table", alias="view_type")


class CardLayout(_CamelModel):
    view_type: Literal["card"] = Field(default="card", alias="view_type")
    title_field: str
    subtitle_field: Optional[str] = None
    image_field: Optional[str] = None
    display_fields: List[DisplayField] = Field(default_factory=list)

    @field_validator("display_fields", mode="before")
    @classmethod
    def _display_fields(cls, v: Any) -> List[DisplayField]:
        return _valid_display_fields(v)


class KanbanCardLayout(_CamelModel):
    """看板卡片布局：所有绑定都可选，标题缺省时由渲染器回退到第一个字段。"""
    title_field: Optional[str] = None
    subtitle_field: Optional[str] = None
    image_field: Optional[str] = None
    display_fields: List[DisplayField] = Field(default_factory=list)

    @field_validator("display_fields", mode="before")
    @classmethod
    def _display_fields(cls, v: Any) -> List[DisplayField]:
        return _valid_display_fields(v)


class KanbanConfig(_CamelModel):
    view_type: Literal["kanban"] = Field(default="kanban", alias="view_type")
    group_by_field: str
    card_layout: Optional[KanbanCardLayout] = None

    @field_validator("card_layout", mode="wrap")
    @classmethod
    def _lenient_card_layout(cls, v: Any, handler) -> Any:
        # 卡片布局无效时只丢弃布局，分组配置仍然有效
        try:
            return handler(v)
        except ValidationError:
            logger.warning("忽略无效的看板卡片布局")
            return None


class GalleryConfig(_CamelModel):
    view_type: Literal["gallery"] = Field(default="gallery", alias="view_type")
    image_field: str
    title_field: Optional[str] = None
    subtitle_field: Optional[str] = None


class ListConfig(_CamelModel):
    view_type: Literal["list"] = Field(default="list", alias="view_type")
    title_field: str
    subtitle_field: Optional[str] = None
    display_fields: List[DisplayField] = Field(default_factory=list)

    @field_validator("display_fields", mode="before")
    @classmethod
    def _display_fields(cls, v: Any) -> List[DisplayField]:
        return _valid_display_fields(v)


class TimelineConfig(_CamelModel):
    view_type: Literal["timeline"] = Field(default="timeline", alias="view_type")
    date_field: str
    title_field: Optional[str] = None
    description_field: Optional[str] = None


class CalendarConfig(_CamelModel):
    view_type: Literal["calendar"] = Field(default="calendar", alias="view_type")
    date_field: str
    title_field: Optional[str] = None
    month: Optional[str] = Field(default=None, description="Displayed month as YYYY-MM; defaults to the current month")


class GanttConfig(_CamelModel):
    view_type: Literal["gantt"] = Field(default="gantt", alias="view_type")
    start_date_field: str
    end_date_field: str
    title_field: str
    group_by_field: Optional[str] = None
    color_by_field: Optional[str] = None
    dependencies_field: Optional[str] = None
    progress_field: Optional[str] = None


ViewConfig = Annotated[
    Union[
        TableConfig,
        CardLayout,
        KanbanConfig,
        GalleryConfig,
        ListConfig,
        TimelineConfig,
        CalendarConfig,
        GanttConfig,
    ],
    Field(discriminator="view_type"),
]


class ViewOptions(_CamelModel):
    """Shared sort/filter/visible-column state plus one slot per view config."""
    visible_columns: List[str] = Field(default_factory=list)
    sort_field: Optional[str] = None
    sort_order: SortOrder = SortOrder.ASC
    filters: List[Filter] = Field(default_factory=list)

    card_layout: Optional[CardLayout] = None
    kanban_config: Optional[KanbanConfig] = None
    gallery_config: Optional[GalleryConfig] = None
    list_config: Optional[ListConfig] = None
    timeline_config: Optional[TimelineConfig] = None
    calendar_config: Optional[CalendarConfig] = None
    gantt_config: Optional[GanttConfig] = None

    @field_validator("visible_columns", "filters", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("sort_order", mode="before")
    @classmethod
    def _lenient_order(cls, v: Any) -> SortOrder:
        return SortOrder.coerce(v)

    @field_validator(
        "card_layout",
        "kanban_config",
        "gallery_config",
        "list_config",
        "timeline_config",
        "calendar_config",
        "gantt_config",
        mode="wrap",
    )
    @classmethod
    def _incomplete_config_as_none(cls, v: Any, handler) -> Any:
        # 缺少必填绑定的配置视为未配置，由渲染器给出提示
        try:
            return handler(v)
        except ValidationError as e:
            logger.warning(f"忽略不完整的视图配置: {e.error_count()} 个错误")
            return None

    def config_for(self, view_type: "ViewType | str") -> Optional[BaseModel]:
        """Return the config variant bound to `view_type`, or None when not configured."""
        view_type = ViewType(view_type)
        if view_type == ViewType.TABLE:
            return TableConfig()
        return {
            ViewType.CARD: self.card_layout,
            ViewType.KANBAN: self.kanban_config,
            ViewType.GALLERY: self.gallery_config,
            ViewType.LIST: self.list_config,
            ViewType.TIMELINE: self.timeline_config,
            ViewType.CALENDAR: self.calendar_config,
            ViewType.GANTT: self.gantt_config,
        }[view_type]


class DatasourceContent(_CamelModel):
    """Content of a page datasource component."""
    data_source_type: Optional[SourceType] = SourceType.ENTITY
    entity_id: Optional[str] = None
    query_id: Optional[str] = None
    api_request_id: Optional[str] = None
    view_type: ViewType = ViewType.TABLE
    view_options: ViewOptions = Field(default_factory=ViewOptions)

    # 无法识别的 dataSourceType 原值，写回时保留
    _raw_source_type: Any = PrivateAttr(default=None)

    @field_validator("data_source_type", mode="before")
    @classmethod
    def _source_type(cls, v: Any) -> Any:
        if v is None or v == "":
            return SourceType.ENTITY
        if not isinstance(v, str) or v not in {t.value for t in SourceType}:
            return None
        return v

    @model_validator(mode="wrap")
    @classmethod
    def _keep_unknown_source_type(cls, data: Any, handler) -> Any:
        content = handler(data)
        if isinstance(data, dict) and content.data_source_type is None:
            content._raw_source_type = data.get("dataSourceType", data.get("data_source_type"))
        return content

    @field_serializer("data_source_type")
    def _dump_source_type(self, v: Optional[SourceType]) -> Any:
        return v.value if v is not None else self._raw_source_type

    @field_validator("view_type", mode="before")
    @classmethod
    def _view_type(cls, v: Any) -> Any:
        if not isinstance(v, str) or v not in {t.value for t in ViewType}:
            return ViewType.TABLE
        return v

    @field_validator("view_options", mode="before")
    @classmethod
    def _view_options(cls, v: Any) -> Any:
        return v or {}

    @property
    def source_id(self) -> Optional[str]:
        """ID matching the configured data source type."""
        if self.data_source_type == SourceType.ENTITY:
            return self.entity_id
        if self.data_source_type == SourceType.QUERY:
            return self.query_id
        if self.data_source_type == SourceType.API:
            return self.api_request_id
        return None

    @classmethod
    def from_raw(cls, raw: Any) -> "DatasourceContent":
        """
        Normalize stored component content: JSON strings are parsed (garbage
        becomes empty content) and a lone {"content": {...}} wrapper is unwrapped.
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raw = {}
        if isinstance(raw, dict) and "content" in raw and len(raw) == 1:
            raw = raw["content"]
        if not isinstance(raw, dict):
            raw = {}
        return cls.model_validate(raw)


# ── Presentation ──────────────────────────────────────

class PresentationStatus(str, Enum):
    READY = "ready"
    EMPTY = "empty"
    UNCONFIGURED = "unconfigured"
    LOADING = "loading"
    ERROR = "error"


class Presentation(BaseModel):
    """Renderer output handed to the UI layer."""
    view_type: ViewType
    status: PresentationStatus = PresentationStatus.READY
    message: Optional[str] = None
    fields: List[FieldInfo] = Field(default_factory=list)
    record_count: int = 0
    body: Dict[str, Any] = Field(default_factory=dict)


# ── Stored resources ──────────────────────────────────

class StoredComponent(BaseModel):
    """A page component bound to a data source."""
    id: str
    name: str = ""
    content: DatasourceContent = Field(default_factory=DatasourceContent)

    @field_validator("content", mode="before")
    @classmethod
    def _normalize_content(cls, v: Any) -> Any:
        if isinstance(v, DatasourceContent):
            return v
        return DatasourceContent.from_raw(v)


class SavedView(BaseModel):
    """A saved set of view options for an entity."""
    id: str
    entity_id: str
    name: str
    view_options: ViewOptions = Field(default_factory=ViewOptions)
    is_default: bool = False
