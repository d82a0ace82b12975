import json

import httpx
import pytest
from mcp.server.fastmcp.exceptions import ToolError

import apps_script_server as server
from apps_script_server import ScriptFile, ScriptFileType
from google_api import GoogleAuth
from test_google_api import DOCUMENT, PRESENTATION, valid_tokens


class FakeGoogle:
    """Answers Google API requests from a route table keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        status, payload = self.routes.get(
            (request.method, request.url.path), (404, {"error": {"code": 404, "message": "Requested entity was not found."}})
        )
        return httpx.Response(status, json=payload)


@pytest.fixture
def google(monkeypatch, tmp_path):
    def install(routes, tokens=True):
        handler = FakeGoogle(routes)
        transport = httpx.MockTransport(handler)
        auth = GoogleAuth(directory=tmp_path, transport=transport)
        if tokens:
            auth.save_tokens(valid_tokens())
        monkeypatch.setattr(server, "_transport", transport)
        monkeypatch.setattr(server, "_auth", auth)
        monkeypatch.setattr(server, "_clients", {})
        return handler

    return install


def test_requires_authentication(google):
    google({}, tokens=False)
    with pytest.raises(ToolError, match="No valid authentication found"):
        server.get_apps_script_project("s1")


def test_api_errors_become_tool_errors(google):
    google({})
    with pytest.raises(ToolError, match="404 Requested entity was not found"):
        server.get_apps_script_project("missing")


def test_get_apps_script_project(google):
    google(
        {
            ("GET", "/v1/projects/s1"): (200, {"scriptId": "s1", "title": "Tools", "parentId": "folder"}),
            ("GET", "/v1/projects/s1/content"): (
                200,
                {"scriptId": "s1", "files": [{"name": "appsscript", "type": "JSON", "source": "{}"}]},
            ),
        }
    )
    project = json.loads(server.get_apps_script_project("s1"))
    assert project["title"] == "Tools"
    assert project["parentId"] == "folder"
    assert project["files"] == [{"name": "appsscript", "type": "JSON", "source": "{}"}]


def test_list_projects_page_size_bounds(google):
    google({})
    with pytest.raises(ToolError, match="between 1 and 100"):
        server.list_apps_script_projects(page_size=0)


def test_create_project_with_files(google):
    handler = google(
        {
            ("POST", "/v1/projects"): (200, {"scriptId": "new", "title": "Checker"}),
            ("PUT", "/v1/projects/new/content"): (200, {"files": [{"name": "Code", "type": "SERVER_JS", "source": "x"}]}),
        }
    )
    files = [ScriptFile(name="Code", type=ScriptFileType.SERVER_JS, source="x")]
    project = json.loads(server.create_apps_script_project("Checker", files=files))
    assert project["scriptId"] == "new"
    assert handler.calls[1][2] == {"files": [{"name": "Code", "type": "SERVER_JS", "source": "x"}]}


def test_update_requires_files(google):
    google({})
    with pytest.raises(ToolError, match="at least one"):
        server.update_apps_script_project("s1", [])


def test_execute_function(google):
    handler = google({("POST", "/v1/scripts/s1:run"): (200, {"done": True, "response": {"result": 42}})})
    result = json.loads(server.execute_apps_script_function("s1", "answer", parameters=[1, 2]))
    assert result == {"done": True, "response": {"result": 42}, "error": None}
    assert handler.calls[0][2] == {"function": "answer", "parameters": [1, 2], "devMode": True}


def test_execute_function_script_error(google):
    google(
        {
            ("POST", "/v1/scripts/s1:run"): (
                200,
                {"done": True, "error": {"code": 3, "details": [{"errorMessage": "boom"}]}},
            )
        }
    )
    with pytest.raises(ToolError, match="Function main failed"):
        server.execute_apps_script_function("s1", "main")


def test_get_document_content(google):
    google({("GET", "/v1/documents/doc1"): (200, DOCUMENT)})
    result = json.loads(server.get_document_content("doc1"))
    assert result["title"] == "Quarterly report"
    assert len(result["content"]) == 3


def test_search_document(google):
    google({("GET", "/v1/documents/doc1"): (200, DOCUMENT)})
    results = json.loads(server.search_document("doc1", "summary"))
    assert results == [{"type": "paragraph", "index": 0, "text": "Summary\n", "headingLevel": 2}]


def test_check_document_contrast(google):
    google({("GET", "/v1/documents/doc1"): (200, DOCUMENT)})
    report = json.loads(server.check_document_contrast("doc1"))
    assert report["standard"] == "AA"
    assert len(report["issues"]) == 1

    issue = report["issues"][0]
    assert issue["location"] == "Element 2, Text Run 2"
    assert issue["text"] == "faintly"
    assert issue["foreground"] == "rgb(204, 204, 204)"
    assert issue["severity"] == "fail"
    assert issue["fontSize"] == 15
    assert report["summary"]["failed"] == 1


def test_check_document_contrast_unknown_standard(google):
    google({("GET", "/v1/documents/doc1"): (200, DOCUMENT)})
    with pytest.raises(ToolError, match="Unknown WCAG standard"):
        server.check_document_contrast("doc1", standard="AAAA")


def test_check_presentation_contrast(google):
    google({("GET", "/v1/presentations/deck1"): (200, PRESENTATION)})
    report = json.loads(server.check_presentation_contrast("deck1", standard="aa"))
    assert report["title"] == "Launch"
    assert report["standard"] == "AA"
    assert [s["slideNumber"] for s in report["slides"]] == [1, 2]

    first, second = report["slides"]
    assert [i["location"] for i in first["issues"]] == ["Slide 1, Element 1, Text Run 1"]
    assert second["issues"] == []
    assert report["summary"]["total"] == 1


def test_clients_share_one_connection_pool(google):
    google({})
    assert server.scripts() is server.scripts()
    assert server.docs() is server.docs()
    auth = server.get_auth()
    assert server.docs().http is auth.http
    assert server.slides().http is auth.http
    assert server.scripts().http is auth.http


def test_close_clients_releases_connection_pool(google):
    google({})
    auth = server.get_auth()
    server.scripts()
    server.close_clients()
    assert auth.http.is_closed
    assert server._auth is None
    assert server._clients == {}


@pytest.mark.anyio
async def test_lifespan_closes_clients(google):
    google({})
    auth = server.get_auth()
    async with server.lifespan(server.mcp):
        server.docs()
        assert not auth.http.is_closed
    assert auth.http.is_closed
