import pytest
from fastapi.testclient import TestClient

from main import create_app
from viewboard.config_loader import AppConfig


@pytest.fixture
def client(tmp_path, schema_dir):
    app = create_app(AppConfig(root=tmp_path))
    with TestClient(app) as test_client:
        yield test_client


def _component(component_id="c1", **content):
    base = {"dataSourceType": "entity", "entityId": "tasks", "viewType": "table"}
    base.update(content)
    return {"id": component_id, "name": "Tasks", "content": base}


def test_entities_and_fields(client):
    entities = client.get("/api/entities").json()
    assert [e["id"] for e in entities] == ["tasks"]

    fields = client.get("/api/entities/tasks/fields").json()
    assert [f["name"] for f in fields] == ["title", "status", "due"]

    assert client.get("/api/entities/missing/fields").status_code == 404


def test_component_refresh_and_render(client):
    client.post("/api/entities/tasks/records", json={"data": {"title": "Ship", "status": "todo"}})
    client.post("/api/entities/tasks/records", json={"data": {"title": "Draft"}, "is_published": False})

    saved = client.put("/api/components/c1", json=_component())
    assert saved.status_code == 200

    assert client.post("/api/components/c1/refresh").status_code == 200

    state = client.get("/api/components/c1/state").json()
    assert state["status"] == "ready"
    assert state["record_count"] == 1

    presentation = client.get("/api/components/c1/render").json()
    assert presentation["status"] == "ready"
    assert presentation["body"]["rows"][0]["cells"]["title"] == "Ship"

    kanban = client.get("/api/components/c1/render", params={"view_type": "kanban"}).json()
    assert kanban["status"] == "unconfigured"

    listing = client.get("/api/components").json()
    assert listing[0]["id"] == "c1"
    assert listing[0]["status"] == "ready"


def test_component_not_found_and_id_mismatch(client):
    assert client.get("/api/components/nope").status_code == 404
    assert client.post("/api/components/nope/refresh").status_code == 404
    assert client.delete("/api/components/nope").status_code == 404
    assert client.put("/api/components/c1", json=_component("c2")).status_code == 400


def test_unknown_entity_component_reports_error(client):
    client.put("/api/components/c1", json=_component(entityId="ghost"))
    client.post("/api/components/c1/refresh")

    presentation = client.get("/api/components/c1/render").json()

    assert presentation["status"] == "error"
    assert presentation["message"] == "Failed to load entity: Entity not found in schema"


def test_preview_without_source_id(client):
    presentation = client.post("/api/preview", json={"dataSourceType": "query"}).json()

    assert presentation["status"] == "error"
    assert presentation["message"] == "Please select a query in the component editor."


def test_preview_entity_card(client):
    client.post("/api/entities/tasks/records", json={"data": {"title": "Ship"}})
    content = {
        "dataSourceType": "entity",
        "entityId": "tasks",
        "viewType": "card",
        "viewOptions": {"cardLayout": {"titleField": "f-title", "subtitleField": "status"}},
    }

    presentation = client.post("/api/preview", json=content).json()

    assert presentation["status"] == "ready"
    assert presentation["body"]["cards"][0]["title"] == "Ship"


def test_saved_views(client):
    first = client.post("/api/entities/tasks/views", json={"name": "All", "is_default": True}).json()
    second = client.post(
        "/api/entities/tasks/views",
        json={"name": "Board", "is_default": True, "view_options": {"kanbanConfig": {"groupByField": "status"}}},
    ).json()

    views = {v["id"]: v for v in client.get("/api/entities/tasks/views").json()}

    assert views[first["id"]]["is_default"] is False
    assert views[second["id"]]["is_default"] is True
    assert client.delete(f"/api/views/{first['id']}").status_code == 200
    assert client.delete(f"/api/views/{first['id']}").status_code == 404


def test_render_applies_default_and_named_views(client):
    client.post("/api/entities/tasks/records", json={"data": {"title": "Ship", "status": "todo"}})
    client.post("/api/entities/tasks/views", json={
        "id": "board",
        "name": "Board",
        "is_default": True,
        "view_options": {"kanbanConfig": {"groupByField": "status"}},
    })
    client.post("/api/entities/tasks/views", json={
        "id": "done-only",
        "name": "Done",
        "view_options": {"filters": [{"field": "status", "operator": "equals", "value": "done"}]},
    })
    client.put("/api/components/c1", json=_component(viewType="kanban"))
    client.post("/api/components/c1/refresh")

    kanban = client.get("/api/components/c1/render").json()
    assert kanban["status"] == "ready"
    assert kanban["body"]["columns"][0]["name"] == "todo"

    filtered = client.get("/api/components/c1/render", params={"view_id": "done-only", "view_type": "table"}).json()
    assert filtered["status"] == "empty"

    assert client.get("/api/components/c1/render", params={"view_id": "ghost"}).status_code == 404


def test_component_options_win_over_default_view(client):
    client.post("/api/entities/tasks/records", json={"data": {"title": "Ship", "status": "todo"}})
    client.post("/api/entities/tasks/views", json={
        "name": "Board",
        "is_default": True,
        "view_options": {"kanbanConfig": {"groupByField": "status"}},
    })
    client.put("/api/components/c1", json=_component(viewType="kanban", viewOptions={"kanbanConfig": {"groupByField": "title"}}))
    client.post("/api/components/c1/refresh")

    kanban = client.get("/api/components/c1/render").json()

    assert kanban["body"]["group_by"] == "title"
    assert kanban["body"]["columns"][0]["name"] == "Ship"


def test_preview_uses_entity_default_view(client):
    client.post("/api/entities/tasks/records", json={"data": {"title": "Ship", "status": "todo"}})
    client.post("/api/entities/tasks/views", json={
        "name": "Board",
        "is_default": True,
        "view_options": {"kanbanConfig": {"groupByField": "status"}},
    })

    presentation = client.post("/api/preview", json={"entityId": "tasks", "viewType": "kanban"}).json()

    assert presentation["status"] == "ready"
    assert presentation["body"]["group_by"] == "status"
