"""
字段类型推断与值转换。
无 schema 的数据源（Query / API）依据第一行数据推断字段；
筛选、排序、渲染阶段按字段类型延迟转换原始值。
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from viewboard.models import FieldInfo, FieldType

logger = logging.getLogger(__name__)

# 区分“键不存在”和“值为 None”
MISSING = object()

_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_HTTP_URL = re.compile(r"^https?://")
_IMAGE_SUFFIX = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)
_LONG_TEXT_THRESHOLD = 100

_NUMBER_LITERAL = re.compile(
    r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|Infinity)$"
)
_RADIX_LITERAL = re.compile(r"^0([xXoObB])([0-9a-fA-F]+)$")
_RADIX = {"x": 16, "o": 8, "b": 2}

_DATE_FORMATS = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)


# ── 日期解析 ──────────────────────────────────────────

def parse_date(value: Any) -> datetime | None:
    """
    尽量把值解析为 datetime，失败返回 None。

    支持 ISO 8601（含结尾 Z）、RFC 2822、常见英文日期写法；
    数字按毫秒时间戳处理。
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    # 纯数字字符串不当作日期
    if not text or _NUMBER_LITERAL.match(text):
        return None

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass

    try:
        parsed = parsedate_to_datetime(text)
        if parsed is not None:
            return parsed
    except (TypeError, ValueError, IndexError):
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_epoch_millis(value: Any) -> float:
    """日期值转毫秒时间戳；无法解析返回 NaN。无时区的值按 UTC 处理。"""
    parsed = parse_date(value)
    if parsed is None:
        return math.nan
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


# ── 值转换（与页面展示层的宽松比较语义一致） ──────────

def to_number(value: Any = MISSING) -> float:
    """数值转换：None -> 0，缺失 -> NaN，空白字符串 -> 0，无法解析 -> NaN。"""
    if value is MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _NUMBER_LITERAL.match(text):
            return float(text)
        radix = _RADIX_LITERAL.match(text)
        if radix:
            try:
                return float(int(radix.group(2), _RADIX[radix.group(1).lower()]))
            except ValueError:
                return math.nan
        return math.nan
    if isinstance(value, (list, tuple)):
        return to_number(to_text(value))
    return math.nan


def to_text(value: Any = MISSING) -> str:
    """字符串转换：None -> "null"，缺失 -> "undefined"，布尔小写，整数值浮点去掉 .0。"""
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else to_text(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


# ── 类型推断 ──────────────────────────────────────────

def _looks_like_date(text: str) -> bool:
    return bool(_ISO_DATE_PREFIX.match(text)) or parse_date(text) is not None


def infer_field_type(value: Any) -> FieldType:
    """
    根据单个值猜测语义字段类型，规则按顺序匹配，首个命中即返回。
    纯函数，对任意 JSON 值都有结果，不抛异常。
    """
    if value is None:
        return FieldType.STRING

    # bool 是 int 的子类，必须先判断
    if isinstance(value, bool):
        return FieldType.BOOLEAN

    if isinstance(value, int):
        return FieldType.INTEGER
    if isinstance(value, float):
        return FieldType.INTEGER if value.is_integer() else FieldType.DECIMAL

    if isinstance(value, str):
        if _looks_like_date(value):
            return FieldType.DATE
        if _HTTP_URL.match(value):
            if _IMAGE_SUFFIX.search(value):
                return FieldType.IMAGE
            return FieldType.STRING
        if len(value) > _LONG_TEXT_THRESHOLD:
            return FieldType.TEXTAREA
        return FieldType.STRING

    return FieldType.STRING


def display_name_for(key: str, split_camel: bool = False) -> str:
    """字段名转展示名：首字母大写、下划线转空格，可选拆分驼峰。"""
    if not key:
        return key
    rest = key[1:].replace("_", " ")
    if split_camel:
        rest = re.sub(r"([A-Z])", r" \1", rest)
    return (key[0].upper() + rest).strip()


def infer_fields(row: Any, split_camel: bool = False) -> list[FieldInfo]:
    """从第一行数据推断字段列表，ID 为 field-<index>。"""
    if not isinstance(row, dict):
        return []
    return [
        FieldInfo(
            id=f"field-{index}",
            name=key,
            display_name=display_name_for(key, split_camel),
            field_type=infer_field_type(row[key]),
        )
        for index, key in enumerate(row.keys())
    ]
