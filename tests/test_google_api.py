import json
from urllib.parse import parse_qs

import httpx
import pytest

import google_api
from google_api import (
    AppsScriptClient,
    AuthError,
    DocsClient,
    GoogleAPIError,
    GoogleAuth,
    SlidesClient,
)

GREY = {"color": {"rgbColor": {"red": 0.8, "green": 0.8, "blue": 0.8}}}
NAVY = {"color": {"rgbColor": {"blue": 0.5}}}


def text_element(content, **style):
    return {"textRun": {"content": content, "textStyle": style}}


DOCUMENT = {
    "documentId": "doc1",
    "title": "Quarterly report",
    "body": {
        "content": [
            {"sectionBreak": {}},
            {
                "paragraph": {
                    "elements": [text_element("Summary\n", bold=True, fontSize={"magnitude": 20, "unit": "PT"})],
                    "paragraphStyle": {"namedStyleType": "HEADING_2", "alignment": "START"},
                }
            },
            {"paragraph": {"elements": [text_element("\n")]}},
            {
                "paragraph": {
                    "elements": [
                        text_element("Revenue grew ", foregroundColor=NAVY),
                        text_element("faintly", foregroundColor=GREY, fontSize={"magnitude": 11, "unit": "PT"}),
                    ],
                }
            },
            {
                "table": {
                    "tableRows": [
                        {
                            "tableCells": [
                                {"content": [{"paragraph": {"elements": [text_element("Region")]}}]},
                                {"content": [{"paragraph": {"elements": [text_element("Revenue total")]}}]},
                            ]
                        }
                    ]
                }
            },
        ]
    },
}


def shape(object_id, *runs):
    return {
        "objectId": object_id,
        "size": {"width": {"magnitude": 914400, "unit": "EMU"}, "height": {"magnitude": 36, "unit": "PT"}},
        "shape": {
            "shapeType": "TEXT_BOX",
            "text": {"textElements": [{"paragraphMarker": {}}] + [{"textRun": r} for r in runs]},
        },
    }


PRESENTATION = {
    "presentationId": "deck1",
    "title": "Launch",
    "slides": [
        {
            "objectId": "s1",
            "pageElements": [
                shape("title", {"content": "Welcome", "style": {"foregroundColor": {"opaqueColor": GREY["color"]}}}),
                {"objectId": "empty", "shape": {"shapeType": "RECTANGLE"}},
                {"objectId": "img", "image": {"contentUrl": "https://example.org/a.png"}},
            ],
        },
        {
            "objectId": "s2",
            "pageElements": [
                {
                    "objectId": "grid",
                    "table": {
                        "tableRows": [
                            {"tableCells": [{"text": {"textElements": [{"textRun": {"content": "Cell"}}]}}]}
                        ]
                    },
                }
            ],
        },
    ],
}


@pytest.fixture
def auth_factory(tmp_path):
    def make(handler, tokens=None):
        transport = httpx.MockTransport(handler)
        auth = GoogleAuth(directory=tmp_path, transport=transport)
        if tokens is not None:
            auth.save_tokens(tokens)
        return auth, transport

    return make


def valid_tokens(**overrides):
    return {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "scope": "",
        "token_type": "Bearer",
        "expiry_date": 0,
        **overrides,
    }


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def test_placeholder_config_created(tmp_path):
    auth = GoogleAuth(directory=tmp_path)
    config = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert config["clientId"].startswith("YOUR_CLIENT_ID")
    assert config["redirectUri"] == "http://localhost:3000/oauth2callback"
    assert auth.token_path == tmp_path / "tokens.json"
    assert auth.is_authenticated() is False


def test_auth_url_requests_offline_access(tmp_path):
    url = GoogleAuth(directory=tmp_path).auth_url()
    query = parse_qs(url.split("?", 1)[1])
    assert url.startswith(google_api.AUTH_URL)
    assert query["access_type"] == ["offline"]
    assert query["response_type"] == ["code"]
    assert "https://www.googleapis.com/auth/documents.readonly" in query["scope"][0].split()


def test_exchange_code_stores_tokens(auth_factory):
    seen = {}

    def handler(request):
        seen.update(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"access_token": "a", "refresh_token": "r", "expires_in": 3600})

    auth, _ = auth_factory(handler)
    tokens = auth.exchange_code("code-123")
    assert seen["grant_type"] == ["authorization_code"]
    assert seen["code"] == ["code-123"]
    assert tokens["expiry_date"] > 0
    assert json.loads(auth.token_path.read_text(encoding="utf-8"))["access_token"] == "a"
    assert auth.is_authenticated()


def test_exchange_code_failure(auth_factory):
    auth, _ = auth_factory(lambda r: httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad code"}))
    with pytest.raises(AuthError, match="Authentication failed: 400 Bad code"):
        auth.exchange_code("nope")


def test_access_token_without_tokens(auth_factory):
    auth, _ = auth_factory(lambda r: httpx.Response(500))
    with pytest.raises(AuthError, match="No valid authentication found"):
        auth.access_token()


def test_expired_token_is_refreshed(auth_factory):
    seen = {}

    def handler(request):
        seen.update(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})

    auth, _ = auth_factory(handler, tokens=valid_tokens(expiry_date=1))
    assert auth.is_expired()
    assert auth.access_token() == "access-2"
    assert seen["grant_type"] == ["refresh_token"]
    assert seen["refresh_token"] == ["refresh-1"]
    assert auth.tokens["refresh_token"] == "refresh-1"
    assert not auth.is_expired()


# ---------------------------------------------------------------------------
# REST clients
# ---------------------------------------------------------------------------

def test_request_error_raises(auth_factory):
    handler = lambda r: httpx.Response(403, json={"error": {"code": 403, "message": "The caller does not have permission"}})
    auth, _ = auth_factory(handler, tokens=valid_tokens())
    with pytest.raises(GoogleAPIError, match="Google API error: 403 The caller does not have permission") as info:
        DocsClient(auth).get_document("doc1")
    assert info.value.status == 403


def test_list_projects_queries_drive(auth_factory):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={"files": [{"id": "s1", "name": "Tools", "createdTime": "c", "modifiedTime": "m"}], "nextPageToken": "n"},
        )

    auth, _ = auth_factory(handler, tokens=valid_tokens())
    result = AppsScriptClient(auth).list_projects(page_size=10, query="O'Brien")
    assert result == {
        "projects": [{"scriptId": "s1", "title": "Tools", "createTime": "c", "updateTime": "m"}],
        "nextPageToken": "n",
    }
    request = seen[0]
    assert request.headers["authorization"] == "Bearer access-1"
    assert request.url.path == "/drive/v3/files"
    assert request.url.params["q"] == (
        "mimeType='application/vnd.google-apps.script' and trashed=false and name contains 'O\\'Brien'"
    )
    assert request.url.params["pageSize"] == "10"


def test_create_project_uploads_files(auth_factory):
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path, json.loads(request.content)))
        if request.method == "POST":
            return httpx.Response(200, json={"scriptId": "new", "title": "Tools"})
        return httpx.Response(200, json={"files": [{"name": "Code", "type": "SERVER_JS", "source": "x"}]})

    auth, _ = auth_factory(handler, tokens=valid_tokens())
    project = AppsScriptClient(auth).create_project(
        "Tools", [{"name": "Code", "source": "x"}], parent_id="folder"
    )
    assert calls[0] == ("POST", "/v1/projects", {"title": "Tools", "parentId": "folder"})
    assert calls[1][:2] == ("PUT", "/v1/projects/new/content")
    assert calls[1][2]["files"] == [{"name": "Code", "type": "SERVER_JS", "source": "x"}]
    assert project["scriptId"] == "new"
    assert project["files"][0]["name"] == "Code"


def test_create_deployment(auth_factory):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"deploymentId": "d1", "deploymentConfig": {"versionNumber": 3, "description": "v3"}, "entryPoints": []},
        )

    auth, _ = auth_factory(handler, tokens=valid_tokens())
    result = AppsScriptClient(auth).create_deployment("s1", 3, "v3")
    assert bodies[0] == {
        "deploymentConfig": {"scriptId": "s1", "manifestFileName": "appsscript", "versionNumber": 3, "description": "v3"}
    }
    assert result == {"deploymentId": "d1", "versionNumber": 3, "description": "v3", "entryPoints": []}


def test_get_execution_logs(auth_factory):
    def handler(request):
        assert request.url.path == "/v1/processes:listScriptProcesses"
        assert request.url.params["scriptId"] == "s1"
        return httpx.Response(
            200,
            json={"processes": [{"functionName": "main", "processType": "EDITOR", "processStatus": "COMPLETED"}]},
        )

    auth, _ = auth_factory(handler, tokens=valid_tokens())
    logs = AppsScriptClient(auth).get_execution_logs("s1", limit=5)
    assert logs == [{"functionName": "main", "processType": "EDITOR", "status": "COMPLETED", "startTime": "", "duration": ""}]


def test_clients_reuse_auth_http_client(auth_factory):
    auth, _ = auth_factory(lambda r: httpx.Response(200, json={}), tokens=valid_tokens())
    docs = DocsClient(auth)
    slides = SlidesClient(auth)
    assert docs.http is slides.http is auth.http

    auth.close()
    assert auth.http.is_closed


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

def test_convert_color():
    assert google_api.convert_color(GREY) == "rgb(204, 204, 204)"
    assert google_api.convert_color({"opaqueColor": {"rgbColor": {"red": 1}}}) == "rgb(255, 0, 0)"
    assert google_api.convert_color({"rgbColor": {"red": 0.5, "green": 0.5, "blue": 0.5}}) == "rgb(128, 128, 128)"
    assert google_api.convert_color({"color": {"themeColor": "DARK1"}}) is None
    assert google_api.convert_color(None) is None


def test_convert_font_size():
    assert google_api.convert_font_size({"magnitude": 12, "unit": "PT"}) == 16
    assert google_api.convert_font_size({"magnitude": 11, "unit": "PT"}) == 15
    assert google_api.convert_font_size({}) is None


def test_heading_level():
    assert google_api.heading_level({"paragraphStyle": {"namedStyleType": "HEADING_3"}}) == 3
    assert google_api.heading_level({"paragraphStyle": {"headingId": "h.4"}}) == 4
    assert google_api.heading_level({"paragraphStyle": {"namedStyleType": "NORMAL_TEXT"}}) is None


def test_docs_extract_content():
    content = DocsClient.extract_content(DOCUMENT)
    assert [e["type"] for e in content] == ["paragraph", "paragraph", "table"]

    heading, body, table = content
    assert heading["headingLevel"] == 2
    assert heading["styles"]["alignment"] == "START"
    assert heading["elements"][0]["styles"]["fontSize"] == 27
    assert heading["elements"][0]["styles"]["bold"] is True

    assert body["text"] == "Revenue grew faintly"
    navy, grey = body["elements"]
    assert navy["styles"]["foregroundColor"] == "rgb(0, 0, 128)"
    assert navy["styles"]["backgroundColor"] == google_api.DEFAULT_BACKGROUND
    assert grey["styles"]["foregroundColor"] == "rgb(204, 204, 204)"

    assert table["rows"][0][1][0]["text"] == "Revenue total"
    unstyled = table["rows"][0][0][0]["elements"][0]["styles"]
    assert unstyled["foregroundColor"] == google_api.DEFAULT_FOREGROUND


def test_docs_search_is_case_insensitive():
    content = DocsClient.extract_content(DOCUMENT)
    results = DocsClient.search(content, "REVENUE")
    assert results[0] == {"type": "paragraph", "index": 1, "text": "Revenue grew faintly", "headingLevel": None}
    assert results[1] == {
        "type": "table_cell",
        "tableIndex": 2,
        "rowIndex": 0,
        "cellIndex": 1,
        "elementIndex": 0,
        "text": "Revenue total",
    }
    assert DocsClient.search(content, "missing") == []


def test_slides_extract_content():
    content = SlidesClient.extract_content(PRESENTATION)
    assert content["title"] == "Launch"
    first, second = content["slides"]
    assert first["slideNumber"] == 1
    assert [e["type"] for e in first["elements"]] == ["paragraph", "image"]

    title = first["elements"][0]
    assert title["text"] == "Welcome"
    assert title["size"] == {"width": 96, "height": 48}
    assert title["elements"][0]["styles"]["foregroundColor"] == "rgb(204, 204, 204)"

    grid = second["elements"][0]
    assert grid["type"] == "table"
    assert grid["rows"][0][0][0]["text"] == "Cell"
