"""
编排器：负责加载数据源、维护会话状态并分发到视图渲染器。

每个渲染会话独立维护 idle -> loading -> ready | error 状态。
同一会话中后发起的加载总是胜出：加载完成时比较 generation，过期结果直接丢弃。
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from viewboard import renderers
from viewboard.adapters.manager import AdapterManager
from viewboard.errors import SourceError
from viewboard.models import (
    DataRecord,
    DatasourceContent,
    FieldInfo,
    Presentation,
    PresentationStatus,
    SourceType,
    ViewOptions,
    ViewType,
)
from viewboard.pipeline import apply_filters, apply_sort, visible_fields
from viewboard.source_state import LoadStatus, SessionState

logger = logging.getLogger(__name__)

MISSING_ID_HINTS = {
    SourceType.ENTITY: "Please select an entity in the component editor.",
    SourceType.QUERY: "Please select a query in the component editor.",
    SourceType.API: "Please select an API request in the component editor.",
}
UNKNOWN_TYPE_HINT = "Please configure the data source type in the component editor."
LOADING_MESSAGE = "Loading data..."
EMPTY_MESSAGE = "No data available"
LOAD_FAILED_MESSAGE = "Failed to load data"


def _normalize_source_type(source_type) -> Optional[SourceType]:
    try:
        return SourceType(source_type)
    except ValueError:
        return None


def _normalize_view_type(view_type) -> ViewType:
    try:
        return ViewType(view_type)
    except ValueError:
        logger.warning(f"未知视图类型 '{view_type}'，使用 table")
        return ViewType.TABLE


class DatasourceOrchestrator:
    """
    维护内存中的会话状态，串联 适配器 -> 筛选/排序 -> 渲染器。
    只在单个事件循环内使用，适配器调用是唯一的挂起点。
    """

    def __init__(self, adapter_manager: AdapterManager):
        self._adapters = adapter_manager
        # session_id -> SessionState
        self._sessions: Dict[str, SessionState] = {}

    # ── 会话状态 ──────────────────────────────────────

    def get_session_state(self, session_id: str) -> SessionState:
        """获取会话状态，不存在时初始化为 idle。"""
        if session_id not in self._sessions:
            self._sessions[session_id] = SessionState(session_id=session_id)
        return self._sessions[session_id]

    def list_sessions(self) -> List[SessionState]:
        return list(self._sessions.values())

    def discard(self, session_id: str) -> bool:
        """移除会话；仍在进行中的加载结果会被丢弃。"""
        return self._sessions.pop(session_id, None) is not None

    def _update_state(
        self,
        state: SessionState,
        status: LoadStatus,
        message: str | None = None,
        result=None,
    ):
        state.status = status
        state.message = message
        state.result = result
        state.last_updated = time.time()
        logger.info(f"[{state.session_id}] State -> {status.value}: {message}")

    def _is_current(self, state: SessionState, generation: int) -> bool:
        return self._sessions.get(state.session_id) is state and state.generation == generation

    # ── 加载 ──────────────────────────────────────────

    async def load(self, session_id: str, source_type, source_id: str | None) -> SessionState:
        """
        加载数据源到会话中。

        缺少 ID 或类型无效时直接进入 error 状态，不调用适配器。
        任何失败都转换为 error 状态，消息原样保留（为空时使用通用提示）。
        """
        state = self.get_session_state(session_id)
        state.generation += 1
        generation = state.generation

        resolved_type = _normalize_source_type(source_type)
        state.source_type = resolved_type
        state.source_id = source_id

        if resolved_type is None:
            self._update_state(state, LoadStatus.ERROR, UNKNOWN_TYPE_HINT)
            return state
        if not source_id:
            self._update_state(state, LoadStatus.ERROR, MISSING_ID_HINTS[resolved_type])
            return state

        self._update_state(state, LoadStatus.LOADING, f"Loading {resolved_type.value} '{source_id}'")

        try:
            adapter = self._adapters.get_adapter(resolved_type)
            result = await adapter.fetch(source_id)
        except SourceError as e:
            if not self._is_current(state, generation):
                logger.debug(f"[{session_id}] 丢弃过期的加载失败 (generation={generation})")
                return state
            logger.error(f"[{session_id}] 加载失败: {e.message}")
            self._update_state(state, LoadStatus.ERROR, e.message or LOAD_FAILED_MESSAGE)
            return state
        except Exception as e:
            if not self._is_current(state, generation):
                logger.debug(f"[{session_id}] 丢弃过期的加载失败 (generation={generation})")
                return state
            logger.error(f"[{session_id}] 加载出现未预期的异常: {e}", exc_info=True)
            self._update_state(state, LoadStatus.ERROR, str(e) or LOAD_FAILED_MESSAGE)
            return state

        if not self._is_current(state, generation):
            logger.debug(f"[{session_id}] 丢弃过期的加载结果 (generation={generation})")
            return state

        self._update_state(
            state,
            LoadStatus.READY,
            f"Loaded {len(result.data)} records",
            result=result,
        )
        return state

    async def load_content(self, session_id: str, content: DatasourceContent) -> SessionState:
        """按组件内容中的数据源配置加载。"""
        return await self.load(session_id, content.data_source_type, content.source_id)

    # ── 派生与渲染 ────────────────────────────────────

    def derive(
        self,
        session_id: str,
        view_options: ViewOptions | None = None,
    ) -> Tuple[List[DataRecord], List[FieldInfo], List[FieldInfo]]:
        """
        对缓存结果执行 筛选 -> 排序 -> 可见列。
        返回 (记录, 全部字段, 可见字段)；会话未就绪时全部为空。
        """
        state = self._sessions.get(session_id)
        if state is None or state.status != LoadStatus.READY or state.result is None:
            return [], [], []

        options = view_options or ViewOptions()
        fields = state.result.fields
        records = apply_filters(state.result.data, options.filters, fields)
        records = apply_sort(records, options.sort_field, options.sort_order, fields)
        return records, list(fields), visible_fields(fields, options.visible_columns)

    def render(
        self,
        session_id: str,
        view_type=ViewType.TABLE,
        view_options: ViewOptions | None = None,
    ) -> Presentation:
        """根据会话状态生成视图展示模型。"""
        view_type = _normalize_view_type(view_type)
        state = self._sessions.get(session_id)

        if state is None or state.status in (LoadStatus.IDLE, LoadStatus.LOADING):
            return Presentation(view_type=view_type, status=PresentationStatus.LOADING, message=LOADING_MESSAGE)
        if state.status == LoadStatus.ERROR:
            return Presentation(view_type=view_type, status=PresentationStatus.ERROR, message=state.message)

        options = view_options or ViewOptions()
        records, fields, shown = self.derive(session_id, options)
        # 表格只显示可见列，其它视图通过绑定自行选择字段
        view_fields = shown if view_type == ViewType.TABLE else fields

        if not records:
            return Presentation(
                view_type=view_type,
                status=PresentationStatus.EMPTY,
                message=EMPTY_MESSAGE,
                fields=view_fields,
            )
        return renderers.render(view_type, records, view_fields, options.config_for(view_type))

    def render_content(
        self,
        session_id: str,
        content: DatasourceContent,
        view_options: ViewOptions | None = None,
    ) -> Presentation:
        """按组件内容渲染；view_options 可覆盖组件自身的选项（例如保存的视图）。"""
        return self.render(session_id, content.view_type, view_options or content.view_options)
