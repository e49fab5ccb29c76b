"""
远程执行服务客户端：通过 HTTP 调用 query / API 执行函数。
服务密钥在每次调用时解析（支持 ${ENV_VAR} 占位符），缺失的环境变量只影响该次调用。
"""

import logging
import os
import re
from typing import Any

import httpx

from viewboard.config_loader import ServiceConfig
from viewboard.errors import ServiceCallError

logger = logging.getLogger(__name__)

_ENV_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


def expand_env(value: str) -> str:
    """把 ${ENV_VAR} 替换为环境变量值；变量未设置时抛出 ServiceCallError。"""
    missing = [name for name in _ENV_PLACEHOLDER.findall(value) if not os.getenv(name)]
    if missing:
        raise ServiceCallError(f"Environment variable {missing[0]} is not set")
    return _ENV_PLACEHOLDER.sub(lambda m: os.environ[m.group(1)], value)


def service_headers(config: ServiceConfig) -> dict[str, str]:
    """根据服务配置生成鉴权 Header；未配置密钥时为空。"""
    if not config.api_key:
        return {}
    key = expand_env(config.api_key)
    # 函数网关同时校验 apikey 头
    return {
        config.header_name: f"{config.header_prefix} {key}" if config.header_prefix else key,
        "apikey": key,
    }


def _error_detail(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("error", "message", "body"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class FunctionClient:
    """调用远程执行函数，返回 JSON 信封。"""

    def __init__(self, config: ServiceConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _url(self, function: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{function}"

    async def invoke(self, function: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST 调用指定函数。

        密钥环境变量缺失、网络错误、非 2xx 响应、非 JSON 对象响应都抛出 ServiceCallError。
        """
        url = self._url(function)
        headers = service_headers(self.config)
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
                headers=headers,
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"函数调用失败 {function}: {e!r}")
            raise ServiceCallError(str(e) or type(e).__name__) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            detail = _error_detail(body) or f"HTTP {response.status_code} {response.reason_phrase}".strip()
            raise ServiceCallError(detail, status_code=response.status_code)

        if not isinstance(body, dict):
            raise ServiceCallError(
                f"Function {function} returned a non-JSON response",
                status_code=response.status_code,
            )
        return body


class QueryService:
    """Query 执行服务：execute(query_id) -> {success, data?, settings?, error?}。"""

    def __init__(self, client: FunctionClient):
        self._client = client

    async def execute(self, query_id: str) -> dict[str, Any]:
        return await self._client.invoke(self._client.config.query_function, {"queryId": query_id})


class ApiRequestService:
    """API 代理执行服务：execute(request_id) -> {success, body?, error?}。"""

    def __init__(self, client: FunctionClient):
        self._client = client

    async def execute(self, request_id: str) -> dict[str, Any]:
        return await self._client.invoke(self._client.config.api_function, {"requestId": request_id})
