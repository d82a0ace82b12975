import base64
import json

import httpx
import pytest
from mcp.server.fastmcp.exceptions import ToolError

import github_server
from github_server import GitHubAPI, GitHubError, GitHubFile


class FakeGitHub:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, dict(request.url.params), body))
        status, payload = self.routes.get((request.method, request.url.path), (404, {"message": "Not Found"}))
        return httpx.Response(status, json=payload)


@pytest.fixture
def fake(monkeypatch):
    def install(routes):
        handler = FakeGitHub(routes)
        api = GitHubAPI("token-123", transport=httpx.MockTransport(handler))
        monkeypatch.setattr(github_server, "_github", api)
        return handler

    return install


def test_client_sends_auth_headers():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={"items": []})

    api = GitHubAPI("abc", transport=httpx.MockTransport(handler))
    api.search_repositories("mcp")
    assert seen["authorization"] == "Bearer abc"
    assert seen["accept"] == "application/vnd.github.v3+json"


def test_error_status_raises():
    api = GitHubAPI("abc", transport=httpx.MockTransport(lambda r: httpx.Response(401, json={})))
    with pytest.raises(GitHubError, match="GitHub API error: 401 Unauthorized"):
        api.get_file_contents("o", "r", "README.md")


def test_get_file_contents_decodes(fake):
    encoded = base64.b64encode("# Hello\n".encode()).decode()
    handler = fake(
        {
            ("GET", "/repos/octo/demo/contents/docs/README.md"): (
                200,
                {"type": "file", "encoding": "base64", "content": encoded, "sha": "s1"},
            )
        }
    )
    result = json.loads(github_server.get_file_contents("octo", "demo", "docs/README.md", ref="main"))
    assert result["decoded_content"] == "# Hello\n"
    assert handler.calls[0][2] == {"ref": "main"}


def test_get_file_contents_not_found(fake):
    fake({})
    with pytest.raises(ToolError, match="404"):
        github_server.get_file_contents("octo", "demo", "missing.txt")


def test_create_or_update_file_encodes_content(fake):
    handler = fake({("PUT", "/repos/octo/demo/contents/a.txt"): (201, {"content": {"sha": "new"}})})
    result = json.loads(
        github_server.create_or_update_file("octo", "demo", "a.txt", "héllo", "add a", sha="old", branch="dev")
    )
    assert result["content"]["sha"] == "new"
    body = handler.calls[0][3]
    assert base64.b64decode(body["content"]).decode() == "héllo"
    assert body["sha"] == "old"
    assert body["branch"] == "dev"
    assert body["message"] == "add a"


def test_push_files_builds_one_commit(fake):
    git = "/repos/octo/demo/git"
    handler = fake(
        {
            ("GET", f"{git}/ref/heads/main"): (200, {"object": {"sha": "head"}}),
            ("GET", f"{git}/commits/head"): (200, {"tree": {"sha": "tree0"}}),
            ("POST", f"{git}/trees"): (201, {"sha": "tree1"}),
            ("POST", f"{git}/commits"): (201, {"sha": "commit1"}),
            ("PATCH", f"{git}/refs/heads/main"): (200, {"ref": "refs/heads/main"}),
        }
    )
    files = [GitHubFile(path="a.txt", content="A"), GitHubFile(path="b/c.txt", content="C")]
    result = json.loads(github_server.push_files("octo", "demo", "main", "two files", files))

    assert result == {"ref": "refs/heads/main", "commit": "commit1", "parent": "head", "files": ["a.txt", "b/c.txt"]}
    assert [c[:2] for c in handler.calls] == [
        ("GET", f"{git}/ref/heads/main"),
        ("GET", f"{git}/commits/head"),
        ("POST", f"{git}/trees"),
        ("POST", f"{git}/commits"),
        ("PATCH", f"{git}/refs/heads/main"),
    ]
    tree_body = handler.calls[2][3]
    assert tree_body["base_tree"] == "tree0"
    assert [e["path"] for e in tree_body["tree"]] == ["a.txt", "b/c.txt"]
    assert handler.calls[3][3]["parents"] == ["head"]
    assert handler.calls[4][3]["sha"] == "commit1"


def test_push_files_requires_files(fake):
    fake({})
    with pytest.raises(ToolError, match="at least one"):
        github_server.push_files("octo", "demo", "main", "nothing", [])


def test_search_repositories(fake):
    handler = fake({("GET", "/search/repositories"): (200, {"total_count": 1, "items": [{"full_name": "octo/demo"}]})})
    result = json.loads(github_server.search_repositories("demo", limit=5))
    assert result["items"][0]["full_name"] == "octo/demo"
    assert handler.calls[0][2] == {"q": "demo", "per_page": "5"}


def test_search_repositories_limit_bounds(fake):
    fake({})
    with pytest.raises(ToolError, match="between 1 and 100"):
        github_server.search_repositories("demo", limit=101)


def test_missing_token(monkeypatch):
    monkeypatch.setattr(github_server, "_github", None)
    monkeypatch.delenv("GITHUB_PERSONAL_ACCESS_TOKEN", raising=False)
    with pytest.raises(ToolError, match="GITHUB_PERSONAL_ACCESS_TOKEN"):
        github_server.get_github()
