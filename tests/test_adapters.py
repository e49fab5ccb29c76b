import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from viewboard.adapters.api_adapter import ApiAdapter
from viewboard.adapters.entity_adapter import EntityAdapter
from viewboard.adapters.manager import AdapterManager
from viewboard.adapters.query_adapter import QueryAdapter
from viewboard.config_loader import ServiceConfig
from viewboard.errors import (
    ExecutionError,
    InvalidResponseError,
    SchemaNotFoundError,
    ServiceCallError,
    SourceError,
)
from viewboard.models import FieldType, SchemaSource, SourceType
from viewboard.schema_registry import SchemaRegistry
from viewboard.services import ApiRequestService, FunctionClient, QueryService


def _service(envelope=None, error=None):
    service = MagicMock()
    service.execute = AsyncMock(return_value=envelope, side_effect=error)
    return service


# ── Entity ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_entity_adapter_reads_published_records_newest_first(schema_dir, entity_store):
    entity_store.insert_record("tasks", {"title": "old"}, created_at="2024-01-01T00:00:00+00:00")
    entity_store.insert_record("tasks", {"title": "new"}, created_at="2024-02-01T00:00:00+00:00")
    entity_store.insert_record("tasks", {"title": "draft"}, is_published=False)
    entity_store.insert_record("other", {"title": "elsewhere"})

    adapter = EntityAdapter(SchemaRegistry(schema_dir), entity_store)
    result = await adapter.fetch("tasks")

    assert adapter.has_declared_schema
    assert result.schema_source == SchemaSource.DECLARED
    assert [r.data["title"] for r in result.data] == ["new", "old"]
    assert all(r.is_published for r in result.data)
    # 字段按 position 排序，类型取自 schema
    assert [f.name for f in result.fields] == ["title", "status", "due"]
    assert result.fields[2].field_type == FieldType.DATE


@pytest.mark.asyncio
async def test_entity_adapter_unknown_entity(schema_dir, entity_store):
    adapter = EntityAdapter(SchemaRegistry(schema_dir), entity_store)

    with pytest.raises(SchemaNotFoundError) as exc_info:
        await adapter.fetch("missing")

    assert isinstance(exc_info.value, SourceError)
    assert exc_info.value.message == "Failed to load entity: Entity not found in schema"


@pytest.mark.asyncio
async def test_entity_adapter_wraps_storage_failure(schema_dir):
    store = MagicMock()
    store.list_records.side_effect = OSError("disk unavailable")
    adapter = EntityAdapter(SchemaRegistry(schema_dir), store)

    with pytest.raises(SourceError) as exc_info:
        await adapter.fetch("tasks")

    assert exc_info.value.message == "Failed to load records: disk unavailable"


# ── Query ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_query_adapter_failure_envelope():
    adapter = QueryAdapter(_service({"success": False, "error": "syntax error"}))

    with pytest.raises(ExecutionError) as exc_info:
        await adapter.fetch("q1")

    assert str(exc_info.value) == "syntax error"


@pytest.mark.asyncio
async def test_query_adapter_failure_without_message():
    adapter = QueryAdapter(_service({"success": False}))

    with pytest.raises(ExecutionError, match="Failed to execute query"):
        await adapter.fetch("q1")


@pytest.mark.asyncio
async def test_query_adapter_transport_failure():
    adapter = QueryAdapter(_service(error=ServiceCallError("connection refused")))

    with pytest.raises(SourceError) as exc_info:
        await adapter.fetch("q1")

    assert exc_info.value.message == "Failed to execute query: connection refused"


@pytest.mark.asyncio
async def test_query_adapter_infers_from_first_row():
    rows = [
        {"id": 7, "name": "Ann", "score": 9.5, "created_at": "2024-01-05T00:00:00Z"},
        {"name": "Bob", "score": "n/a"},
    ]
    adapter = QueryAdapter(_service({"success": True, "data": rows}))

    result = await adapter.fetch("q1")

    assert result.schema_source == SchemaSource.INFERRED
    assert [(f.name, f.field_type) for f in result.fields] == [
        ("id", FieldType.INTEGER),
        ("name", FieldType.STRING),
        ("score", FieldType.DECIMAL),
        ("created_at", FieldType.DATE),
    ]
    assert [r.id for r in result.data] == ["7", "record-1"]
    assert all(r.is_published is True for r in result.data)
    assert result.data[0].created_at == "2024-01-05T00:00:00Z"
    assert result.data[1].created_at is not None
    # 原始值不做转换
    assert result.data[1].data["score"] == "n/a"


@pytest.mark.asyncio
async def test_query_adapter_falls_back_to_selected_fields():
    settings = {"selected_fields": [{"name": "email", "display_name": "E-mail"}, {"field_name": "age"}, {}]}
    adapter = QueryAdapter(_service({"success": True, "data": [], "settings": settings}))

    result = await adapter.fetch("q1")

    assert result.data == []
    assert result.schema_source == SchemaSource.SETTINGS
    assert [(f.name, f.display_name) for f in result.fields] == [
        ("email", "E-mail"),
        ("age", "age"),
        ("field_2", "Field 3"),
    ]
    assert {f.field_type for f in result.fields} == {FieldType.STRING}


@pytest.mark.asyncio
async def test_query_adapter_no_rows_no_settings():
    result = await QueryAdapter(_service({"success": True, "data": None})).fetch("q1")

    assert result.fields == []
    assert not result.has_schema


# ── API ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_api_adapter_results_wrapper():
    body = {"results": [{"id": 1, "name": "Ann", "joined": "2024-01-05"}]}
    adapter = ApiAdapter(_service({"success": True, "body": body}))

    result = await adapter.fetch("r1")

    assert [(f.name, f.field_type) for f in result.fields] == [
        ("id", FieldType.INTEGER),
        ("name", FieldType.STRING),
        ("joined", FieldType.DATE),
    ]
    assert len(result.data) == 1
    assert result.data[0].id == "1"


@pytest.mark.asyncio
async def test_api_adapter_parses_string_body_and_splits_camel_case():
    body = json.dumps([{"_id": "abc", "createdAt": "2024-03-01"}, {"title": "no id"}])
    adapter = ApiAdapter(_service({"success": True, "body": body}))

    result = await adapter.fetch("r1")

    assert [r.id for r in result.data] == ["abc", "api-record-1"]
    assert result.data[0].created_at == "2024-03-01"
    assert result.fields[1].display_name == "Created At"


@pytest.mark.asyncio
async def test_api_adapter_invalid_json_body():
    adapter = ApiAdapter(_service({"success": True, "body": "<html>oops</html>"}))

    with pytest.raises(InvalidResponseError, match="API response is not valid JSON"):
        await adapter.fetch("r1")


@pytest.mark.asyncio
async def test_api_adapter_failure_envelope():
    adapter = ApiAdapter(_service({"success": False, "error": "upstream 502"}))

    with pytest.raises(ExecutionError, match="upstream 502"):
        await adapter.fetch("r1")


@pytest.mark.parametrize(
    "body, expected",
    [
        ([{"a": 1}], [{"a": 1}]),
        ({"data": [{"a": 1}]}, [{"a": 1}]),
        ({"data": "x", "items": [{"a": 2}]}, [{"a": 2}]),
        ({"records": [{"a": 3}]}, [{"a": 3}]),
        ({"a": 4}, [{"a": 4}]),
        (None, []),
        (42, []),
    ],
)
def test_api_adapter_locates_records(body, expected):
    assert ApiAdapter(_service()).locate_records("r1", body) == expected


def test_api_adapter_record_path():
    adapter = ApiAdapter(_service(), {"r1": "$.payload.issues", "broken": "$[["})
    body = {"payload": {"issues": [{"n": 1}, {"n": 2}]}, "data": [{"n": 0}]}

    assert adapter.locate_records("r1", body) == [{"n": 1}, {"n": 2}]
    # 无效表达式被忽略，退回默认定位
    assert adapter.locate_records("broken", body) == [{"n": 0}]
    assert adapter.locate_records("r1", {"data": [{"n": 9}]}) == [{"n": 9}]


@pytest.mark.asyncio
async def test_api_adapter_wraps_scalar_records():
    adapter = ApiAdapter(_service({"success": True, "body": ["a", "b"]}))

    result = await adapter.fetch("r1")

    assert [r.data for r in result.data] == [{"value": "a"}, {"value": "b"}]
    assert [f.name for f in result.fields] == ["value"]


@pytest.mark.asyncio
async def test_inferred_fields_match_first_row_keys():
    row = {"id": 1, "title": "t", "tags": ["a"], "meta": {"k": 1}, "empty": None}
    result = await ApiAdapter(_service({"success": True, "body": [row]})).fetch("r1")

    first = result.data[0]
    assert all(f.name in first.data for f in result.fields)
    assert len({f.name for f in result.fields}) == len(result.fields)


# ── Manager ───────────────────────────────────────────

def test_adapter_manager_resolves_by_type():
    query = QueryAdapter(_service())
    manager = AdapterManager(query)

    assert manager.get_adapter("query") is query
    assert manager.get_adapter(SourceType.QUERY) is query
    with pytest.raises(SourceError):
        manager.get_adapter("api")
    with pytest.raises(SourceError):
        manager.get_adapter("graphql")


# ── Function client ───────────────────────────────────

def _client(handler) -> FunctionClient:
    config = ServiceConfig(base_url="http://svc.test/functions/v1/", api_key="secret")
    return FunctionClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_function_client_posts_payload_with_api_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": [{"id": 1}]})

    result = await QueryAdapter(QueryService(_client(handler))).fetch("q-42")

    assert seen == {
        "url": "http://svc.test/functions/v1/execute-query",
        "auth": "Bearer secret",
        "payload": {"queryId": "q-42"},
    }
    assert result.data[0].id == "1"


@pytest.mark.asyncio
async def test_function_client_http_error():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(ServiceCallError) as exc_info:
        await _client(handler).invoke("execute-api-request", {"requestId": "r1"})

    assert exc_info.value.message == "boom"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_api_adapter_through_function_client_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    adapter = ApiAdapter(ApiRequestService(_client(handler)))

    with pytest.raises(SourceError) as exc_info:
        await adapter.fetch("r1")

    assert exc_info.value.message == "Failed to execute API request: connection refused"


@pytest.mark.asyncio
async def test_function_client_rejects_non_json():
    def handler(request):
        return httpx.Response(200, text="ok")

    with pytest.raises(ServiceCallError):
        await _client(handler).invoke("execute-query", {"queryId": "q"})


def test_adapter_manager_error_names_raw_type():
    manager = AdapterManager(QueryAdapter(_service()))

    with pytest.raises(SourceError) as exc_info:
        manager.get_adapter(SourceType.API)

    assert exc_info.value.message == "Unsupported data source type: api"


@pytest.mark.asyncio
async def test_function_client_resolves_env_key_per_call(monkeypatch):
    monkeypatch.delenv("VIEWBOARD_TEST_KEY", raising=False)
    seen = []

    def handler(request):
        seen.append((request.headers.get("Authorization"), request.headers.get("apikey")))
        return httpx.Response(200, json={"success": True, "data": []})

    config = ServiceConfig(base_url="http://svc.test", api_key="${VIEWBOARD_TEST_KEY}")
    client = FunctionClient(config, transport=httpx.MockTransport(handler))

    with pytest.raises(ServiceCallError) as exc_info:
        await client.invoke("execute-query", {"queryId": "q"})
    assert "VIEWBOARD_TEST_KEY" in exc_info.value.message
    assert seen == []

    monkeypatch.setenv("VIEWBOARD_TEST_KEY", "k-1")
    await client.invoke("execute-query", {"queryId": "q"})

    assert seen == [("Bearer k-1", "k-1")]


@pytest.mark.asyncio
async def test_missing_env_key_fails_only_the_query_load(monkeypatch):
    monkeypatch.delenv("VIEWBOARD_TEST_KEY", raising=False)
    config = ServiceConfig(base_url="http://svc.test", api_key="${VIEWBOARD_TEST_KEY}")
    client = FunctionClient(config, transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))

    with pytest.raises(SourceError) as exc_info:
        await QueryAdapter(QueryService(client)).fetch("q1")

    assert exc_info.value.message == "Failed to execute query: Environment variable VIEWBOARD_TEST_KEY is not set"
