"""
配置加载器：将 YAML 配置文件解析为 Pydantic 模型。
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ── 远程执行服务 ──────────────────────────────────────

class ServiceConfig(BaseModel):
    base_url: str = "http://localhost:54321/functions/v1"
    # 支持 ${ENV_VAR} 占位符
    api_key: Optional[str] = None
    header_name: str = "Authorization"
    header_prefix: str = "Bearer"
    timeout: float = 30.0
    query_function: str = "execute-query"
    api_function: str = "execute-api-request"


# ── 存储 ──────────────────────────────────────────────

class StorageConfig(BaseModel):
    data_dir: str = "data"  # TinyDB 记录库 + components.json / views.json
    schema_dir: str = "config/entities"  # Entity schema YAML


# ── API 数据源 ────────────────────────────────────────

class ApiSourcesConfig(BaseModel):
    # request_id -> JSONPath，定位响应体中的记录数组
    record_paths: Dict[str, str] = Field(default_factory=dict)


# ── 服务端 ────────────────────────────────────────────

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8400
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


# ── 顶层配置 ──────────────────────────────────────────

class AppConfig(BaseModel):
    root: Path = Field(default=Path("."), exclude=True)
    services: ServiceConfig = Field(default_factory=ServiceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api_sources: ApiSourcesConfig = Field(default_factory=ApiSourcesConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    def resolve_path(self, value: str) -> Path:
        """相对路径基于项目根目录解析。"""
        path = Path(value)
        return path if path.is_absolute() else self.root / path

    @property
    def data_dir(self) -> Path:
        return self.resolve_path(self.storage.data_dir)

    @property
    def schema_dir(self) -> Path:
        return self.resolve_path(self.storage.schema_dir)


# ── Loading ───────────────────────────────────────────

_CONFIG_SEARCH_PATHS = [
    "config/config.yaml",
    "config.yaml",
]


def project_root() -> Path:
    return Path(os.getenv("VIEWBOARD_ROOT", "."))


def find_config_root(base: Path | None = None) -> Path:
    """Find the root config file or directory."""
    base = base or project_root()
    config_dir = base / "config"
    if config_dir.is_dir():
        return config_dir

    for p in _CONFIG_SEARCH_PATHS:
        path = base / p
        if path.exists():
            return path

    return base


def deep_merge_dict(base: dict, update: dict) -> dict:
    """Deep merge two dictionaries; later values win, nested dicts are merged."""
    for k, v in update.items():
        if isinstance(v, dict) and k in base and isinstance(base[k], dict):
            base[k] = deep_merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def load_all_yamls(root: Path) -> dict:
    """Load and merge all YAML files under root (entity schema files excluded)."""
    combined: Dict[str, Any] = {}

    files = []
    if root.is_file():
        files.append(root)
    elif root.is_dir():
        files.extend(root.glob("*.yaml"))
        files.extend(root.glob("*.yml"))
        files.sort()

    for f in files:
        try:
            with open(f, "r", encoding="utf-8") as fp:
                content = yaml.safe_load(fp)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"加载配置文件失败 {f}: {e}")
            continue
        if not isinstance(content, dict):
            continue
        deep_merge_dict(combined, content)

    return combined


def load_config(path: Optional[str | Path] = None) -> AppConfig:
    """
    Load and merge configuration from YAML files.
    Missing files yield the defaults.
    """
    root = project_root()
    if path is None:
        path = find_config_root(root)
    path = Path(path)

    raw = load_all_yamls(path)
    config = AppConfig.model_validate(raw)
    config.root = root
    return config
