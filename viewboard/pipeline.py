"""
筛选 / 排序管线：对规范化后的记录集做客户端筛选和按字段类型排序。
两个变换都是纯函数，不修改输入，不抛异常。
"""

import functools
import math
import unicodedata
from typing import Iterable, List, Optional, Sequence

from viewboard.inference import MISSING, to_epoch_millis, to_number, to_text
from viewboard.models import (
    DATE_FIELD_TYPES,
    NUMERIC_FIELD_TYPES,
    DataRecord,
    FieldInfo,
    Filter,
    FilterOperator,
    SortOrder,
)


def find_field(fields: Sequence[FieldInfo], ref: Optional[str]) -> Optional[FieldInfo]:
    """按 ID 优先、名称其次查找字段。"""
    if not ref:
        return None
    for f in fields:
        if f.id == ref:
            return f
    for f in fields:
        if f.name == ref:
            return f
    return None


# ── 筛选 ──────────────────────────────────────────────

def _matches(record: DataRecord, flt: Filter, fields: Sequence[FieldInfo]) -> bool:
    field = find_field(fields, flt.field)
    if field is None:
        # 未知字段不参与筛选
        return True

    value = record.data.get(field.name, MISSING)
    operator = flt.operator

    if operator == FilterOperator.EQUALS:
        return to_text(value) == flt.value
    if operator == FilterOperator.CONTAINS:
        return flt.value.lower() in to_text(value).lower()
    if operator == FilterOperator.GREATER_THAN:
        # NaN 比较恒为 False：非数值记录被排除
        return to_number(value) > to_number(flt.value)
    if operator == FilterOperator.LESS_THAN:
        return to_number(value) < to_number(flt.value)
    return True


def apply_filters(
    records: Iterable[DataRecord],
    filters: Optional[Sequence[Filter]],
    fields: Sequence[FieldInfo],
) -> List[DataRecord]:
    """所有筛选条件取交集（AND）。"""
    records = list(records)
    if not filters:
        return records
    return [r for r in records if all(_matches(r, f, fields) for f in filters)]


# ── 排序 ──────────────────────────────────────────────

def _locale_key(text: str) -> tuple[str, str]:
    # 主键：去重音、忽略大小写；次键：小写在前
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base.casefold(), text.swapcase()


def _compare_numbers(a: float, b: float) -> int:
    if math.isnan(a) or math.isnan(b):
        return 0
    return (a > b) - (a < b)


def _compare_values(a, b, field: FieldInfo) -> int:
    if field.field_type in NUMERIC_FIELD_TYPES:
        return _compare_numbers(to_number(a), to_number(b))
    if field.field_type in DATE_FIELD_TYPES:
        return _compare_numbers(to_epoch_millis(a), to_epoch_millis(b))
    ka, kb = _locale_key(to_text(a)), _locale_key(to_text(b))
    return (ka > kb) - (ka < kb)


def _is_empty(value) -> bool:
    return value is None or value is MISSING


def apply_sort(
    records: Iterable[DataRecord],
    sort_field: Optional[str],
    sort_order: SortOrder | str,
    fields: Sequence[FieldInfo],
) -> List[DataRecord]:
    """
    按单个字段稳定排序。

    空值（None / 缺失）无论升降序都排在最后；方向只作用于非空值的比较结果。
    未指定或未知的排序字段保持原顺序；除 asc 以外的排序方向都按降序处理。
    """
    records = list(records)
    field = find_field(fields, sort_field)
    if field is None:
        return records

    direction = -1 if SortOrder.coerce(sort_order) == SortOrder.DESC else 1

    def comparator(ra: DataRecord, rb: DataRecord) -> int:
        a = ra.data.get(field.name, MISSING)
        b = rb.data.get(field.name, MISSING)
        if _is_empty(a) and _is_empty(b):
            return 0
        if _is_empty(a):
            return 1
        if _is_empty(b):
            return -1
        return _compare_values(a, b, field) * direction

    return sorted(records, key=functools.cmp_to_key(comparator))


# ── 可见列 ────────────────────────────────────────────

def visible_fields(fields: Sequence[FieldInfo], visible_columns: Optional[Sequence[str]]) -> List[FieldInfo]:
    """空选择表示显示全部字段，而不是不显示。"""
    if not visible_columns:
        return list(fields)
    selected = set(visible_columns)
    return [f for f in fields if f.id in selected]
