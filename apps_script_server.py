# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
#     "httpx>=0.27",
#     "pydantic>=2.0",
# ]
# ///
"""
Apps Script MCP Server ("apps-script-mcp").

Provides 11 tools over the Google Apps Script, Drive, Docs and Slides APIs:
  1. list_apps_script_projects     - Script projects visible in Drive
  2. get_apps_script_project       - Project metadata and all files
  3. create_apps_script_project    - New standalone or bound project
  4. update_apps_script_project    - Replace project files
  5. deploy_apps_script            - Create a deployment
  6. execute_apps_script_function  - Run a function via scripts.run
  7. get_execution_logs            - Recent script processes
  8. get_document_content          - Flattened Google Doc content
  9. search_document               - Find text in a Google Doc
 10. check_document_contrast       - WCAG contrast report for a Google Doc
 11. check_presentation_contrast   - WCAG contrast report for a presentation

Run `a11y-toolkit auth url` and `a11y-toolkit auth exchange CODE` once to
store OAuth tokens before using these tools.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import BaseModel, Field

import contrast_engine as engine
import google_api

log = logging.getLogger("apps_script_server")


class ScriptFileType(str, Enum):
    SERVER_JS = "SERVER_JS"
    HTML = "HTML"
    JSON = "JSON"


class ScriptFile(BaseModel):
    name: str = Field(description="File name")
    type: ScriptFileType = Field(description="File type")
    source: str = Field(description="File content")


_auth: google_api.GoogleAuth | None = None
_transport: httpx.BaseTransport | None = None
_clients: dict[type, google_api.GoogleClient] = {}


def get_auth() -> google_api.GoogleAuth:
    global _auth
    if _auth is None:
        _auth = google_api.GoogleAuth(transport=_transport)
    return _auth


def _client(cls):
    auth = get_auth()
    client = _clients.get(cls)
    if client is None or client.auth is not auth:
        client = _clients[cls] = cls(auth)
    return client


def scripts() -> google_api.AppsScriptClient:
    return _client(google_api.AppsScriptClient)


def docs() -> google_api.DocsClient:
    return _client(google_api.DocsClient)


def slides() -> google_api.SlidesClient:
    return _client(google_api.SlidesClient)


def close_clients():
    global _auth
    if _auth is not None:
        _auth.close()
    _auth = None
    _clients.clear()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    try:
        yield
    finally:
        close_clients()


mcp = FastMCP(
    "apps-script-mcp",
    instructions=(
        "Manages Google Apps Script projects and checks Google Docs and Slides "
        "for colour contrast problems. Requires stored OAuth tokens."
    ),
    lifespan=lifespan,
)


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except (google_api.AuthError, google_api.GoogleAPIError) as e:
        raise ToolError(str(e))
    except httpx.HTTPError as e:
        raise ToolError(f"Google API request failed: {e}")


def _files(files: list[ScriptFile]) -> list[dict]:
    return [f.model_dump(mode="json") for f in files]


def _contrast_report(elements: list[dict], standard: str, large_text_threshold: float) -> dict:
    try:
        issues = engine.analyze_elements(elements, standard=standard, large_text_threshold=large_text_threshold)
    except ValueError as e:
        raise ToolError(str(e))
    return {"issues": issues, "summary": engine.summarize(issues)}


# ---------------------------------------------------------------------------
# Apps Script projects
# ---------------------------------------------------------------------------

@mcp.tool()
def list_apps_script_projects(page_size: int = 50, page_token: str | None = None, search_query: str | None = None) -> str:
    """List all Apps Script projects accessible to the user.

    Args:
        page_size: Maximum number of projects to return (1-100)
        page_token: Token for pagination
        search_query: Filter projects by title
    """
    if not 1 <= page_size <= 100:
        raise ToolError("page_size must be between 1 and 100")
    return _fmt(_call(scripts().list_projects, page_size, page_token, search_query))


@mcp.tool()
def get_apps_script_project(script_id: str) -> str:
    """Get complete project content including all files.

    Args:
        script_id: The Apps Script project ID
    """
    return _fmt(_call(scripts().get_project, script_id))


@mcp.tool()
def create_apps_script_project(title: str, parent_id: str | None = None, files: list[ScriptFile] | None = None) -> str:
    """Create new Apps Script project.

    Args:
        title: Project title
        parent_id: Drive folder ID or bound container ID
        files: Initial files to create
    """
    project = _call(scripts().create_project, title, _files(files or []), parent_id)
    log.info("Created Apps Script project %s", project.get("scriptId"))
    return _fmt(project)


@mcp.tool()
def update_apps_script_project(script_id: str, files: list[ScriptFile]) -> str:
    """Update project files. The given files replace the project's content.

    Args:
        script_id: The Apps Script project ID
        files: Files to update or add
    """
    if not files:
        raise ToolError("files must contain at least one entry")
    return _fmt(_call(scripts().update_project, script_id, _files(files)))


@mcp.tool()
def deploy_apps_script(
    script_id: str,
    version_number: int | None = None,
    description: str | None = None,
    manifest_file_name: str = "appsscript",
) -> str:
    """Create deployment for script.

    Args:
        script_id: The Apps Script project ID
        version_number: Version number to deploy
        description: Deployment description
        manifest_file_name: Manifest file name
    """
    return _fmt(_call(scripts().create_deployment, script_id, version_number, description, manifest_file_name))


@mcp.tool()
def execute_apps_script_function(
    script_id: str,
    function_name: str,
    parameters: list | None = None,
    dev_mode: bool = True,
) -> str:
    """Run a function in the script.

    Args:
        script_id: The Apps Script project ID
        function_name: Function name to execute
        parameters: Function parameters
        dev_mode: Run in development mode
    """
    result = _call(scripts().execute_function, script_id, function_name, parameters, dev_mode)
    if result.get("error"):
        raise ToolError(f"Function {function_name} failed: {_fmt(result['error'])}")
    return _fmt(result)


@mcp.tool()
def get_execution_logs(script_id: str, limit: int = 100) -> str:
    """Retrieve script execution logs.

    Args:
        script_id: The Apps Script project ID
        limit: Maximum number of log entries
    """
    return _fmt(_call(scripts().get_execution_logs, script_id, limit))


# ---------------------------------------------------------------------------
# Documents and presentations
# ---------------------------------------------------------------------------

@mcp.tool()
def get_document_content(document_id: str) -> str:
    """Get the paragraphs and tables of a Google Doc with their text styles.

    Args:
        document_id: Google Docs document ID
    """
    document = _call(docs().get_document, document_id)
    return _fmt(
        {
            "documentId": document.get("documentId", document_id),
            "title": document.get("title"),
            "content": google_api.DocsClient.extract_content(document),
        }
    )


@mcp.tool()
def search_document(document_id: str, search_term: str) -> str:
    """Search a Google Doc for text (case-insensitive).

    Args:
        document_id: Google Docs document ID
        search_term: Text to look for
    """
    if not search_term:
        raise ToolError("search_term must not be empty")
    content = _call(docs().get_document_content, document_id)
    return _fmt(google_api.DocsClient.search(content, search_term))


@mcp.tool()
def check_document_contrast(document_id: str, standard: str = "AA", large_text_threshold: float = 18) -> str:
    """Check every text run of a Google Doc against WCAG contrast requirements.

    Args:
        document_id: Google Docs document ID
        standard: "AA" or "AAA"
        large_text_threshold: Font size in px from which text counts as large
    """
    document = _call(docs().get_document, document_id)
    report = _contrast_report(google_api.DocsClient.extract_content(document), standard, large_text_threshold)
    return _fmt({"documentId": document_id, "title": document.get("title"), "standard": standard.upper(), **report})


@mcp.tool()
def check_presentation_contrast(presentation_id: str, standard: str = "AA", large_text_threshold: float = 18) -> str:
    """Check the text of every slide against WCAG contrast requirements.

    Args:
        presentation_id: Google Slides presentation ID
        standard: "AA" or "AAA"
        large_text_threshold: Font size in px from which text counts as large
    """
    content = _call(slides().get_presentation_content, presentation_id)
    per_slide = []
    all_issues = []
    for slide in content["slides"]:
        report = _contrast_report(slide["elements"], standard, large_text_threshold)
        for issue in report["issues"]:
            issue["location"] = f"Slide {slide['slideNumber']}, {issue['location']}"
        per_slide.append({"slideNumber": slide["slideNumber"], "slideId": slide["slideId"], **report})
        all_issues += report["issues"]
    return _fmt(
        {
            "presentationId": presentation_id,
            "title": content.get("title"),
            "standard": standard.upper(),
            "slides": per_slide,
            "summary": engine.summarize(all_issues),
        }
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Apps Script MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
