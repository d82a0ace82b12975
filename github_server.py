# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
#     "httpx>=0.27",
#     "pydantic>=2.0",
# ]
# ///
"""
GitHub MCP Server ("github-minimal").

Provides 4 tools over the GitHub REST v3 API:
  1. get_file_contents      - Read a repository file or directory listing
  2. create_or_update_file  - Commit a single file via the contents API
  3. push_files             - Commit several files at once via the git data API
  4. search_repositories    - Search repositories

Requires GITHUB_PERSONAL_ACCESS_TOKEN. GITHUB_API_URL overrides the API root
(for GitHub Enterprise).
"""

import base64
import binascii
import json
import logging
import os
from urllib.parse import quote

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import BaseModel, Field

log = logging.getLogger("github_server")

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "mcp-github-minimal"

mcp = FastMCP(
    "github-minimal",
    instructions=(
        "Reads and writes GitHub repositories with a personal access token. "
        "Use get_file_contents to fetch the current sha before updating a file "
        "with create_or_update_file; use push_files to commit several files in "
        "one commit."
    ),
)


class GitHubError(Exception):
    """Non-2xx answer from the GitHub API."""

    def __init__(self, status: int, reason: str):
        super().__init__(f"GitHub API error: {status} {reason}")
        self.status = status


class GitHubFile(BaseModel):
    path: str = Field(description="File path in repository")
    content: str = Field(description="File content")


class GitHubAPI:
    """Minimal GitHub REST client."""

    def __init__(self, token: str, base_url: str = DEFAULT_API_URL, transport: httpx.BaseTransport | None = None):
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            },
            timeout=30.0,
            transport=transport,
        )

    def request(self, method: str, endpoint: str, **kwargs):
        response = self.client.request(method, endpoint, **kwargs)
        if response.is_error:
            log.warning("%s %s -> %s", method, endpoint, response.status_code)
            raise GitHubError(response.status_code, response.reason_phrase)
        return response.json() if response.content else {}

    @staticmethod
    def _contents_path(owner: str, repo: str, path: str) -> str:
        return f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'))}"

    def get_file_contents(self, owner: str, repo: str, path: str, ref: str | None = None):
        params = {"ref": ref} if ref else None
        return self.request("GET", self._contents_path(owner, repo, path), params=params)

    def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
        branch: str | None = None,
    ):
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            body["sha"] = sha
        if branch:
            body["branch"] = branch
        return self.request("PUT", self._contents_path(owner, repo, path), json=body)

    def push_files(self, owner: str, repo: str, ref: str, files: list[GitHubFile], message: str) -> dict:
        """Create one commit containing all files on top of ``ref``."""
        git = f"/repos/{owner}/{repo}/git"
        head = self.request("GET", f"{git}/ref/heads/{ref}")
        parent_sha = head["object"]["sha"]
        parent = self.request("GET", f"{git}/commits/{parent_sha}")

        tree = self.request(
            "POST",
            f"{git}/trees",
            json={
                "base_tree": parent["tree"]["sha"],
                "tree": [
                    {"path": f.path, "mode": "100644", "type": "blob", "content": f.content}
                    for f in files
                ],
            },
        )
        commit = self.request(
            "POST",
            f"{git}/commits",
            json={"message": message, "tree": tree["sha"], "parents": [parent_sha]},
        )
        updated = self.request("PATCH", f"{git}/refs/heads/{ref}", json={"sha": commit["sha"], "force": False})
        return {
            "ref": updated.get("ref", f"refs/heads/{ref}"),
            "commit": commit["sha"],
            "parent": parent_sha,
            "files": [f.path for f in files],
        }

    def search_repositories(self, query: str, limit: int = 10):
        return self.request("GET", "/search/repositories", params={"q": query, "per_page": limit})


_github: GitHubAPI | None = None


def get_github() -> GitHubAPI:
    """Return the shared client, creating it from the environment."""
    global _github
    if _github is None:
        token = os.environ.get("GITHUB_PERSONAL_ACCESS_TOKEN")
        if not token:
            raise ToolError("GITHUB_PERSONAL_ACCESS_TOKEN environment variable is required")
        _github = GitHubAPI(token, os.environ.get("GITHUB_API_URL", DEFAULT_API_URL))
    return _github


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except GitHubError as e:
        raise ToolError(str(e))
    except httpx.HTTPError as e:
        raise ToolError(f"GitHub request failed: {e}")


def _decode_content(result):
    """Add decoded_content to a single-file contents response."""
    if not isinstance(result, dict) or result.get("encoding") != "base64":
        return result
    try:
        decoded = base64.b64decode(result.get("content", "")).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return result
    return {**result, "decoded_content": decoded}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
def get_file_contents(owner: str, repo: str, path: str, ref: str | None = None) -> str:
    """Read repository files from GitHub.

    Args:
        owner: Repository owner
        repo: Repository name
        path: File path in repository
        ref: Optional branch, tag or commit
    """
    return _fmt(_decode_content(_call(get_github().get_file_contents, owner, repo, path, ref)))


@mcp.tool()
def create_or_update_file(
    owner: str,
    repo: str,
    path: str,
    content: str,
    message: str,
    sha: str | None = None,
    branch: str | None = None,
) -> str:
    """Create or update repository files on GitHub.

    Args:
        owner: Repository owner
        repo: Repository name
        path: File path in repository
        content: File content
        message: Commit message
        sha: File SHA (required for updates)
        branch: Optional target branch
    """
    return _fmt(_call(get_github().create_or_update_file, owner, repo, path, content, message, sha, branch))


@mcp.tool()
def push_files(owner: str, repo: str, ref: str, message: str, files: list[GitHubFile]) -> str:
    """Push several files to a GitHub branch in a single commit.

    Args:
        owner: Repository owner
        repo: Repository name
        ref: Branch name
        message: Commit message
        files: Files to commit ({path, content})
    """
    if not files:
        raise ToolError("files must contain at least one entry")
    return _fmt(_call(get_github().push_files, owner, repo, ref, files, message))


@mcp.tool()
def search_repositories(query: str, limit: int = 10) -> str:
    """Search for repositories on GitHub.

    Args:
        query: Search query
        limit: Maximum number of results (1-100)
    """
    if not 1 <= limit <= 100:
        raise ToolError("limit must be between 1 and 100")
    return _fmt(_call(get_github().search_repositories, query, limit))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("GitHub Minimal MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
