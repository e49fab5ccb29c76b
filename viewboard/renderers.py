"""
视图渲染器：把 (记录, 字段, 视图配置) 转换为 Presentation。

八个渲染器都是纯函数，不读取数据源，不修改记录。
空记录集返回 empty 状态；缺少必填绑定返回 unconfigured 状态并附带配置提示。
"""

import calendar
import functools
import logging
import math
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from viewboard.inference import MISSING, parse_date, to_epoch_millis, to_number, to_text
from viewboard.models import (
    DATE_FIELD_TYPES,
    CalendarConfig,
    CardLayout,
    DataRecord,
    FieldInfo,
    FieldType,
    GalleryConfig,
    GanttConfig,
    KanbanConfig,
    ListConfig,
    Presentation,
    PresentationStatus,
    TimelineConfig,
    ViewType,
)
from viewboard.pipeline import find_field

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No data available"
UNTITLED = "Untitled"
MAX_CALENDAR_ENTRIES = 3

CONFIGURE_HINTS = {
    ViewType.CARD: "Please configure the Card view by selecting a title field in View Options.",
    ViewType.KANBAN: "Please configure the Kanban view by selecting a grouping field in View Options.",
    ViewType.GALLERY: "Please configure the Gallery view by selecting an image field in View Options.",
    ViewType.LIST: "Please configure the List view by selecting a title field in View Options.",
    ViewType.TIMELINE: "Please configure the Timeline view by selecting a date field in View Options.",
    ViewType.CALENDAR: "Please configure the Calendar view by selecting a date field in View Options.",
    ViewType.GANTT: "Please configure start date, end date, and title fields in View Options",
}

STATUS_COLORS = {
    "planned": "blue-500",
    "in progress": "yellow-500",
    "completed": "green-500",
    "on hold": "gray-500",
    "cancelled": "red-500",
}

PRIORITY_COLORS = {
    "low": "blue-400",
    "medium": "yellow-500",
    "high": "orange-500",
    "critical": "red-600",
}

DEFAULT_BAR_COLOR = "primary"

Renderer = Callable[[List[DataRecord], List[FieldInfo], Any], Presentation]
RENDERERS: Dict[ViewType, Renderer] = {}


# ── 值格式化 ──────────────────────────────────────────

def _is_empty(value: Any) -> bool:
    return value is None or value is MISSING


def _is_falsy(value: Any) -> bool:
    """None、""、0、NaN、False 视为假；空列表和空对象视为真。"""
    if _is_empty(value) or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0 or math.isnan(value)
    return False


def format_date(value: Any) -> Optional[str]:
    """日期格式化为 M/D/YYYY，无法解析返回 None。"""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def format_long_date(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    if parsed is None:
        return None
    return f"{calendar.month_name[parsed.month]} {parsed.day}, {parsed.year}"


def format_value(value: Any, field: FieldInfo, empty: Optional[str] = None) -> Optional[str]:
    """
    按字段类型格式化单个值。

    None / 缺失 -> empty（表格中为 "-"，其它视图省略），
    Boolean -> Yes / No，Date / DateTime -> M/D/YYYY，其它 -> 字符串。
    """
    if _is_empty(value):
        return empty
    if field.field_type == FieldType.BOOLEAN:
        return "No" if _is_falsy(value) else "Yes"
    if field.field_type in DATE_FIELD_TYPES:
        return format_date(value) or to_text(value)
    return to_text(value)


def _value(record: DataRecord, field: Optional[FieldInfo]) -> Any:
    if field is None:
        return MISSING
    return record.data.get(field.name, MISSING)


def _text(record: DataRecord, field: Optional[FieldInfo]) -> Optional[str]:
    if field is None:
        return None
    text = format_value(_value(record, field), field)
    return text or None


def _title(record: DataRecord, field: Optional[FieldInfo]) -> str:
    return _text(record, field) or UNTITLED


# ── Presentation 构造 ─────────────────────────────────

def _ready(view_type: ViewType, records: Sequence[DataRecord], fields: Sequence[FieldInfo], body: dict) -> Presentation:
    return Presentation(
        view_type=view_type,
        status=PresentationStatus.READY,
        fields=list(fields),
        record_count=len(records),
        body=body,
    )


def _empty(view_type: ViewType, fields: Sequence[FieldInfo], message: str = EMPTY_MESSAGE) -> Presentation:
    return Presentation(view_type=view_type, status=PresentationStatus.EMPTY, message=message, fields=list(fields))


def _unconfigured(view_type: ViewType, fields: Sequence[FieldInfo]) -> Presentation:
    return Presentation(
        view_type=view_type,
        status=PresentationStatus.UNCONFIGURED,
        message=CONFIGURE_HINTS[view_type],
        fields=list(fields),
    )


def renders(view_type: ViewType):
    """注册渲染器；空记录集统一返回 empty 状态。"""
    def decorator(func: Renderer) -> Renderer:
        @functools.wraps(func)
        def wrapper(records, fields, config=None) -> Presentation:
            records = list(records)
            fields = list(fields)
            if not records:
                return _empty(view_type, fields)
            return func(records, fields, config)
        RENDERERS[view_type] = wrapper
        return wrapper
    return decorator


# ── 公共片段 ──────────────────────────────────────────

def _display_fields(fields: Sequence[FieldInfo], layout) -> List[FieldInfo]:
    """按 position 稳定排序，忽略无法解析的字段引用。"""
    if layout is None:
        return []
    ordered = sorted(layout.display_fields, key=lambda df: df.position)
    resolved = [find_field(fields, df.field_id) for df in ordered]
    return [f for f in resolved if f is not None]


def _field_entries(record: DataRecord, display: Sequence[FieldInfo]) -> List[dict]:
    entries = []
    for field in display:
        text = _text(record, field)
        if text is None:
            continue
        entries.append({
            "name": field.name,
            "display_name": field.display_name or field.name,
            "value": text,
            "multiline": field.field_type == FieldType.TEXTAREA,
        })
    return entries


def _card(record: DataRecord, fields: Sequence[FieldInfo], layout, with_image: bool = True) -> dict:
    """layout 可以是 CardLayout、KanbanCardLayout 或 ListConfig；标题绑定无效时回退到第一个字段。"""
    title_field = (find_field(fields, layout.title_field) if layout else None) or (fields[0] if fields else None)
    subtitle_field = find_field(fields, layout.subtitle_field) if layout else None
    card = {
        "id": record.id,
        "title": _title(record, title_field),
        "subtitle": _text(record, subtitle_field),
        "published": bool(record.is_published),
        "fields": _field_entries(record, _display_fields(fields, layout)),
    }
    if with_image:
        image_field = find_field(fields, layout.image_field) if layout else None
        card["image"] = _text(record, image_field)
    return card


# ── 视图渲染器 ────────────────────────────────────────

@renders(ViewType.TABLE)
def render_table(records, fields, config=None) -> Presentation:
    """表格：每个可见字段一列，空值显示为 "-"。"""
    rows = [
        {
            "id": record.id,
            "cells": {f.name: format_value(_value(record, f), f, empty="-") for f in fields},
        }
        for record in records
    ]
    columns = [{"id": f.id, "name": f.name, "display_name": f.display_name or f.name} for f in fields]
    return _ready(ViewType.TABLE, records, fields, {"columns": columns, "rows": rows})


@renders(ViewType.CARD)
def render_card(records, fields, config: Optional[CardLayout] = None) -> Presentation:
    if config is None:
        return _unconfigured(ViewType.CARD, fields)
    cards = [_card(r, fields, config) for r in records]
    return _ready(ViewType.CARD, records, fields, {"cards": cards})


@renders(ViewType.KANBAN)
def render_kanban(records, fields, config: Optional[KanbanConfig] = None) -> Presentation:
    """看板：按分组字段的值分列，列顺序为首次出现顺序。"""
    group_field = find_field(fields, config.group_by_field) if config else None
    if group_field is None:
        return _unconfigured(ViewType.KANBAN, fields)

    columns: Dict[str, List[dict]] = {}
    for record in records:
        value = _value(record, group_field)
        key = "Uncategorized" if _is_falsy(value) else to_text(value)
        columns.setdefault(key, []).append(_card(record, fields, config.card_layout))

    body = {
        "group_by": group_field.name,
        "columns": [{"name": name, "count": len(cards), "cards": cards} for name, cards in columns.items()],
    }
    return _ready(ViewType.KANBAN, records, fields, body)


@renders(ViewType.GALLERY)
def render_gallery(records, fields, config: Optional[GalleryConfig] = None) -> Presentation:
    image_field = find_field(fields, config.image_field) if config else None
    if image_field is None:
        return _unconfigured(ViewType.GALLERY, fields)

    title_field = find_field(fields, config.title_field) or fields[0]
    subtitle_field = find_field(fields, config.subtitle_field)
    items = []
    for record in records:
        image = _text(record, image_field)
        items.append({
            "id": record.id,
            "image": image,
            "no_image": image is None,
            "title": _title(record, title_field),
            "subtitle": _text(record, subtitle_field),
        })
    return _ready(ViewType.GALLERY, records, fields, {"items": items})


@renders(ViewType.LIST)
def render_list(records, fields, config: Optional[ListConfig] = None) -> Presentation:
    if config is None:
        return _unconfigured(ViewType.LIST, fields)
    items = [_card(r, fields, config, with_image=False) for r in records]
    return _ready(ViewType.LIST, records, fields, {"items": items})


@renders(ViewType.TIMELINE)
def render_timeline(records, fields, config: Optional[TimelineConfig] = None) -> Presentation:
    """时间线：按日期字段（缺失时用 created_at）倒序，无法解析的日期排在最后。"""
    date_field = find_field(fields, config.date_field) if config else None
    if date_field is None:
        return _unconfigured(ViewType.TIMELINE, fields)

    title_field = find_field(fields, config.title_field) or fields[0]
    description_field = find_field(fields, config.description_field)

    def when(record: DataRecord):
        value = _value(record, date_field)
        return record.created_at if _is_falsy(value) else value

    def sort_key(record: DataRecord):
        millis = to_epoch_millis(when(record))
        return (1, 0.0) if math.isnan(millis) else (0, -millis)

    entries = []
    for record in sorted(records, key=sort_key):
        entries.append({
            "id": record.id,
            "date_label": format_long_date(when(record)) or "No date",
            "title": _title(record, title_field),
            "description": _text(record, description_field),
        })
    return _ready(ViewType.TIMELINE, records, fields, {"entries": entries})


def _calendar_month(month: Optional[str]) -> date:
    if month:
        try:
            year, mon = (int(part) for part in month.split("-", 1))
            return date(year, mon, 1)
        except ValueError:
            logger.warning(f"无效的日历月份 '{month}'，使用当前月份")
    return date.today().replace(day=1)


@renders(ViewType.CALENDAR)
def render_calendar(records, fields, config: Optional[CalendarConfig] = None) -> Presentation:
    """月历：每天最多列出 3 条记录，其余以 more 计数。周日为每周第一天。"""
    date_field = find_field(fields, config.date_field) if config else None
    if date_field is None:
        return _unconfigured(ViewType.CALENDAR, fields)

    title_field = find_field(fields, config.title_field) or fields[0]
    by_date: Dict[date, List[str]] = {}
    for record in records:
        value = _value(record, date_field)
        if _is_falsy(value):
            continue
        parsed = parse_date(value)
        if parsed is None:
            continue
        by_date.setdefault(parsed.date(), []).append(_title(record, title_field))

    first = _calendar_month(config.month)
    days_in_month = calendar.monthrange(first.year, first.month)[1]
    days = []
    for day in range(1, days_in_month + 1):
        current = first.replace(day=day)
        titles = by_date.get(current, [])
        days.append({
            "day": day,
            "date": current.isoformat(),
            "entries": titles[:MAX_CALENDAR_ENTRIES],
            "more": max(0, len(titles) - MAX_CALENDAR_ENTRIES),
        })

    body = {
        "year": first.year,
        "month": first.month,
        "month_name": calendar.month_name[first.month],
        "leading_blanks": (first.weekday() + 1) % 7,
        "days": days,
    }
    return _ready(ViewType.CALENDAR, records, fields, body)


def _bar_color(record: DataRecord, color_field: Optional[FieldInfo]) -> str:
    if color_field is None:
        return DEFAULT_BAR_COLOR
    value = _value(record, color_field)
    key = "" if _is_falsy(value) else to_text(value).lower()
    return STATUS_COLORS.get(key) or PRIORITY_COLORS.get(key) or DEFAULT_BAR_COLOR


def _progress(record: DataRecord, progress_field: Optional[FieldInfo]) -> float:
    if progress_field is None:
        return 0.0
    value = to_number(_value(record, progress_field))
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 100.0)


def _dependencies(record: DataRecord, dependencies_field: Optional[FieldInfo]) -> List[str]:
    value = _value(record, dependencies_field)
    if _is_falsy(value):
        return []
    if isinstance(value, (list, tuple)):
        return [to_text(v) for v in value if not _is_empty(v)]
    return [part.strip() for part in to_text(value).split(",") if part.strip()]


def _month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


@renders(ViewType.GANTT)
def render_gantt(records, fields, config: Optional[GanttConfig] = None) -> Presentation:
    """
    甘特图：只包含开始和结束日期都有效的记录。
    时间轴从最早日期所在月初到最晚日期所在月末，条形位置以百分比表示。
    """
    if config is None:
        return _unconfigured(ViewType.GANTT, fields)
    start_field = find_field(fields, config.start_date_field)
    end_field = find_field(fields, config.end_date_field)
    title_field = find_field(fields, config.title_field)
    if start_field is None or end_field is None or title_field is None:
        return _unconfigured(ViewType.GANTT, fields)

    group_field = find_field(fields, config.group_by_field)
    color_field = find_field(fields, config.color_by_field)
    progress_field = find_field(fields, config.progress_field)
    dependencies_field = find_field(fields, config.dependencies_field)

    tasks = []
    for record in records:
        raw_start, raw_end = _value(record, start_field), _value(record, end_field)
        if _is_falsy(raw_start) or _is_falsy(raw_end):
            continue
        start, end = parse_date(raw_start), parse_date(raw_end)
        if start is None or end is None:
            continue
        tasks.append((record, start.date(), end.date()))

    if not tasks:
        return _empty(ViewType.GANTT, fields, "No records with valid dates")

    range_start = min(min(s, e) for _, s, e in tasks).replace(day=1)
    range_end = _month_end(max(max(s, e) for _, s, e in tasks))
    total_days = (range_end - range_start).days

    months = []
    cursor = range_start
    while cursor <= range_end:
        months.append({"year": cursor.year, "month": cursor.month, "label": f"{calendar.month_abbr[cursor.month]} {cursor.year}"})
        cursor = _month_end(cursor) + timedelta(days=1)

    groups: Dict[str, List[dict]] = {}
    for record, start, end in tasks:
        if group_field is None:
            group = "All Tasks"
        else:
            value = _value(record, group_field)
            group = "Ungrouped" if _is_falsy(value) else to_text(value)

        duration = (end - start).days + 1
        groups.setdefault(group, []).append({
            "id": record.id,
            "title": _title(record, title_field),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "left_pct": round((start - range_start).days / total_days * 100, 4),
            "width_pct": round(duration / total_days * 100, 4),
            "color": _bar_color(record, color_field),
            "progress": _progress(record, progress_field),
            "dependencies": _dependencies(record, dependencies_field),
        })

    body = {
        "range_start": range_start.isoformat(),
        "range_end": range_end.isoformat(),
        "total_days": total_days,
        "months": months,
        "groups": [{"name": name, "tasks": items} for name, items in groups.items()],
    }
    return _ready(ViewType.GANTT, records, fields, body)


def render(view_type, records: Sequence[DataRecord], fields: Sequence[FieldInfo], config=None) -> Presentation:
    """按视图类型分发；未知视图类型按表格渲染。"""
    try:
        view_type = ViewType(view_type)
    except ValueError:
        view_type = ViewType.TABLE
    return RENDERERS[view_type](records, fields, config)
