"""
ViewBoard 主入口：启动 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from viewboard import api
from viewboard.adapters.api_adapter import ApiAdapter
from viewboard.adapters.entity_adapter import EntityAdapter
from viewboard.adapters.manager import AdapterManager
from viewboard.adapters.query_adapter import QueryAdapter
from viewboard.config_loader import AppConfig, load_config
from viewboard.data_controller import EntityStore
from viewboard.orchestrator import DatasourceOrchestrator
from viewboard.resource_manager import ResourceManager
from viewboard.schema_registry import SchemaRegistry
from viewboard.services import ApiRequestService, FunctionClient, QueryService

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：启动时预加载所有组件，关闭时释放存储。"""

    orchestrator = app.state.orchestrator
    resource_manager = app.state.resource_manager

    components = resource_manager.load_components()
    if components:
        logger.info(f"启动时预加载 {len(components)} 个数据源组件...")
        for component in components:
            # load 内部已将失败转换为 error 状态
            await orchestrator.load_content(component.id, component.content)
    else:
        logger.info("没有存储的组件，跳过预加载")

    yield  # 应用运行中

    logger.info("正在关闭...")
    app.state.entity_store.close()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用。"""
    app = FastAPI(
        title="ViewBoard API",
        description="Data source normalization and multi-view rendering",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ── 初始化核心组件 ────────────────────────────────────────
    if config is None:
        logger.info("正在加载配置...")
        config = load_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Entity schema 与记录存储
    schema_registry = SchemaRegistry(config.schema_dir)
    entity_store = EntityStore(config.data_dir / "records.json")
    logger.info(f"已加载 {len(schema_registry.list_entities())} 个 Entity 定义")

    # 远程执行服务
    client = FunctionClient(config.services)

    # 数据源适配器
    adapters = AdapterManager(
        EntityAdapter(schema_registry, entity_store),
        QueryAdapter(QueryService(client)),
        ApiAdapter(ApiRequestService(client), config.api_sources.record_paths),
    )

    # 编排器
    orchestrator = DatasourceOrchestrator(adapters)

    # 资源管理器 (JSON-based storage)
    resource_manager = ResourceManager(config.data_dir)

    # 注入依赖到 API 模块
    api.init_api(
        orchestrator=orchestrator,
        resource_manager=resource_manager,
        schema_registry=schema_registry,
        entity_store=entity_store,
    )

    # 注册 API 路由
    app.include_router(api.router)

    # 将组件存到 app.state，供 lifespan 访问
    app.state.config = config
    app.state.orchestrator = orchestrator
    app.state.entity_store = entity_store
    app.state.resource_manager = resource_manager

    return app


def main():
    """主入口。"""
    config = load_config()
    port = int(sys.argv[1]) if len(sys.argv) > 1 else config.server.port

    logger.info(f"启动 ViewBoard 后端 (port={port})...")

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
