"""
Google OAuth2 credentials and REST clients for Apps Script, Docs and Slides.

Config lives in ``<GOOGLE_MCP_CONFIG_DIR>/config.json`` (default
``~/.apps-script-mcp``)::

    {"clientId": "...", "clientSecret": "...",
     "redirectUri": "http://localhost:3000/oauth2callback",
     "tokenPath": "~/.apps-script-mcp/tokens.json"}

A config with placeholder credentials is written on first use. Tokens are
cached as ``{access_token, refresh_token, scope, token_type, expiry_date}``
with ``expiry_date`` in epoch milliseconds (0 = never expires).

Documents are flattened to the element format consumed by
``contrast_engine.analyze_elements``.
"""

import json
import logging
import os
import re
import time
from pathlib import Path
from urllib.parse import quote, urlencode

import httpx

log = logging.getLogger("google_api")

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SCRIPT_API = "https://script.googleapis.com/v1"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DOCS_API = "https://docs.googleapis.com/v1/documents"
SLIDES_API = "https://slides.googleapis.com/v1/presentations"

SCRIPT_MIME_TYPE = "application/vnd.google-apps.script"

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/script.projects",
    "https://www.googleapis.com/auth/script.deployments",
    "https://www.googleapis.com/auth/script.processes",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
    "https://www.googleapis.com/auth/documents.readonly",
    "https://www.googleapis.com/auth/presentations.readonly",
]

TOKEN_TIMEOUT = 30.0
API_TIMEOUT = 60.0

PT_TO_PX = 1.33
EMU_PER_INCH = 914400
DEFAULT_FOREGROUND = "rgb(0, 0, 0)"
DEFAULT_BACKGROUND = "rgb(255, 255, 255)"

_HEADING_ID_RE = re.compile(r"h\.(\d+)")
_NAMED_HEADING_RE = re.compile(r"HEADING_(\d)")


class AuthError(Exception):
    """No usable OAuth credentials."""


class GoogleAPIError(Exception):
    """Non-2xx answer from a Google API."""

    def __init__(self, status: int, message: str):
        super().__init__(f"Google API error: {status} {message}")
        self.status = status


def _now_ms() -> int:
    return int(time.time() * 1000)


def _round(value: float) -> int:
    """Round half up."""
    return int(value + 0.5)


def config_dir() -> Path:
    return Path(os.environ.get("GOOGLE_MCP_CONFIG_DIR") or Path.home() / ".apps-script-mcp").expanduser()


def _write_json(path: Path, data: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.reason_phrase
    if isinstance(error, str):
        return body.get("error_description") or error
    return response.reason_phrase


# ---------------------------------------------------------------------------
# OAuth2
# ---------------------------------------------------------------------------

class GoogleAuth:
    """OAuth2 installed-app flow with a JSON token cache."""

    def __init__(self, directory: str | Path | None = None, transport: httpx.BaseTransport | None = None):
        self.directory = Path(directory) if directory else config_dir()
        self.config_path = self.directory / "config.json"
        self.config = self.load_config()
        self.token_path = Path(self.config.get("tokenPath") or self.directory / "tokens.json").expanduser()
        self.tokens = self.load_tokens()
        # Shared by every GoogleClient built on this auth
        self.http = httpx.Client(timeout=API_TIMEOUT, transport=transport)

    def close(self):
        self.http.close()

    def load_config(self) -> dict:
        if not self.config_path.exists():
            config = {
                "clientId": "YOUR_CLIENT_ID.apps.googleusercontent.com",
                "clientSecret": "YOUR_CLIENT_SECRET",
                "redirectUri": "http://localhost:3000/oauth2callback",
                "tokenPath": str(self.directory / "tokens.json"),
            }
            _write_json(self.config_path, config)
            log.warning("Created placeholder OAuth config at %s", self.config_path)
            return config
        return json.loads(self.config_path.read_text(encoding="utf-8"))

    def load_tokens(self) -> dict | None:
        if not self.token_path.exists():
            return None
        try:
            return json.loads(self.token_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("Error loading tokens from %s: %s", self.token_path, e)
            return None

    def save_tokens(self, tokens: dict):
        _write_json(self.token_path, tokens)
        self.tokens = tokens

    def auth_url(self, scopes: list[str] | None = None) -> str:
        params = {
            "client_id": self.config["clientId"],
            "redirect_uri": self.config["redirectUri"],
            "response_type": "code",
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def _token_request(self, data: dict) -> dict:
        response = self.http.post(
            TOKEN_URL,
            timeout=TOKEN_TIMEOUT,
            data={"client_id": self.config["clientId"], "client_secret": self.config["clientSecret"], **data},
        )
        if response.is_error:
            raise AuthError(f"Authentication failed: {response.status_code} {_error_message(response)}")
        return response.json()

    @staticmethod
    def _expiry(payload: dict) -> int:
        expires_in = payload.get("expires_in")
        return _now_ms() + int(expires_in) * 1000 if expires_in else 0

    def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for tokens and cache them."""
        payload = self._token_request(
            {"code": code, "grant_type": "authorization_code", "redirect_uri": self.config["redirectUri"]}
        )
        tokens = {
            "access_token": payload.get("access_token", ""),
            "refresh_token": payload.get("refresh_token", ""),
            "scope": payload.get("scope", ""),
            "token_type": payload.get("token_type", "Bearer"),
            "expiry_date": self._expiry(payload),
        }
        self.save_tokens(tokens)
        log.info("Stored new tokens in %s", self.token_path)
        return tokens

    def refresh(self) -> dict:
        if not self.tokens or not self.tokens.get("refresh_token"):
            raise AuthError("No refresh token available. Please run authentication flow.")
        payload = self._token_request({"refresh_token": self.tokens["refresh_token"], "grant_type": "refresh_token"})
        tokens = {
            **self.tokens,
            "access_token": payload.get("access_token") or self.tokens.get("access_token", ""),
            "refresh_token": payload.get("refresh_token") or self.tokens["refresh_token"],
            "expiry_date": self._expiry(payload) or self.tokens.get("expiry_date", 0),
        }
        self.save_tokens(tokens)
        log.info("Access token refreshed")
        return tokens

    def is_expired(self) -> bool:
        expiry = (self.tokens or {}).get("expiry_date") or 0
        return bool(expiry) and _now_ms() >= expiry

    def access_token(self) -> str:
        if not self.tokens or not self.tokens.get("access_token"):
            raise AuthError("No valid authentication found. Please run authentication flow.")
        if self.is_expired():
            self.refresh()
        return self.tokens["access_token"]

    def is_authenticated(self) -> bool:
        return bool(self.tokens and self.tokens.get("access_token")) and not self.is_expired()


# ---------------------------------------------------------------------------
# REST clients
# ---------------------------------------------------------------------------

class GoogleClient:
    """Bearer-authenticated JSON requests."""

    def __init__(self, auth: GoogleAuth):
        self.auth = auth
        self.http = auth.http

    def request(self, method: str, url: str, **kwargs):
        headers = {"Authorization": f"Bearer {self.auth.access_token()}"}
        response = self.http.request(method, url, headers=headers, **kwargs)
        if response.is_error:
            log.warning("%s %s -> %s", method, url, response.status_code)
            raise GoogleAPIError(response.status_code, _error_message(response))
        return response.json() if response.content else {}


def _normalize_files(files) -> list[dict]:
    return [
        {"name": f.get("name", ""), "type": f.get("type") or "SERVER_JS", "source": f.get("source", "")}
        for f in files or []
    ]


def _project_info(project: dict, content: dict | None = None) -> dict:
    content = content if content is not None else project
    return {
        "scriptId": project.get("scriptId", ""),
        "title": project.get("title", ""),
        "parentId": project.get("parentId"),
        "createTime": project.get("createTime", ""),
        "updateTime": project.get("updateTime", ""),
        "files": _normalize_files(content.get("files")),
    }


class AppsScriptClient(GoogleClient):
    """Apps Script API v1 plus the Drive listing of script projects."""

    def list_projects(self, page_size: int = 50, page_token: str | None = None, query: str | None = None) -> dict:
        q = f"mimeType='{SCRIPT_MIME_TYPE}' and trashed=false"
        if query:
            q += " and name contains '{}'".format(query.replace("\\", "\\\\").replace("'", "\\'"))
        params = {
            "q": q,
            "pageSize": page_size,
            "fields": "nextPageToken, files(id, name, createdTime, modifiedTime)",
        }
        if page_token:
            params["pageToken"] = page_token
        data = self.request("GET", f"{DRIVE_API}/files", params=params)
        return {
            "projects": [
                {
                    "scriptId": f.get("id", ""),
                    "title": f.get("name", ""),
                    "createTime": f.get("createdTime", ""),
                    "updateTime": f.get("modifiedTime", ""),
                }
                for f in data.get("files", [])
            ],
            "nextPageToken": data.get("nextPageToken"),
        }

    def get_project(self, script_id: str) -> dict:
        project = self.request("GET", f"{SCRIPT_API}/projects/{quote(script_id)}")
        content = self.request("GET", f"{SCRIPT_API}/projects/{quote(script_id)}/content")
        return _project_info(project, content)

    def create_project(self, title: str, files: list[dict] | None = None, parent_id: str | None = None) -> dict:
        body = {"title": title}
        if parent_id:
            body["parentId"] = parent_id
        project = self.request("POST", f"{SCRIPT_API}/projects", json=body)
        if not files:
            return _project_info(project)
        content = self.request(
            "PUT",
            f"{SCRIPT_API}/projects/{quote(project['scriptId'])}/content",
            json={"files": _normalize_files(files)},
        )
        return _project_info(project, content)

    def update_project(self, script_id: str, files: list[dict]) -> dict:
        content = self.request(
            "PUT",
            f"{SCRIPT_API}/projects/{quote(script_id)}/content",
            json={"files": _normalize_files(files)},
        )
        return _project_info({"scriptId": script_id, **content}, content)

    def create_deployment(
        self,
        script_id: str,
        version_number: int | None = None,
        description: str | None = None,
        manifest_file_name: str = "appsscript",
    ) -> dict:
        config = {"scriptId": script_id, "manifestFileName": manifest_file_name}
        if version_number:
            config["versionNumber"] = version_number
        if description:
            config["description"] = description
        deployment = self.request(
            "POST", f"{SCRIPT_API}/projects/{quote(script_id)}/deployments", json={"deploymentConfig": config}
        )
        deployed = deployment.get("deploymentConfig", {})
        return {
            "deploymentId": deployment.get("deploymentId", ""),
            "versionNumber": deployed.get("versionNumber", 0),
            "description": deployed.get("description", ""),
            "entryPoints": deployment.get("entryPoints", []),
        }

    def execute_function(
        self, script_id: str, function: str, parameters: list | None = None, dev_mode: bool = True
    ) -> dict:
        result = self.request(
            "POST",
            f"{SCRIPT_API}/scripts/{quote(script_id)}:run",
            json={"function": function, "parameters": parameters or [], "devMode": dev_mode},
        )
        return {
            "done": result.get("done", False),
            "response": result.get("response"),
            "error": result.get("error"),
        }

    def get_execution_logs(self, script_id: str, limit: int = 100) -> list[dict]:
        data = self.request(
            "GET",
            f"{SCRIPT_API}/processes:listScriptProcesses",
            params={"scriptId": script_id, "pageSize": limit},
        )
        return [
            {
                "functionName": p.get("functionName", ""),
                "processType": p.get("processType", ""),
                "status": p.get("processStatus", ""),
                "startTime": p.get("startTime", ""),
                "duration": p.get("duration", ""),
            }
            for p in data.get("processes", [])[:limit]
        ]


def convert_color(color: dict | None) -> str | None:
    """Google OptionalColor / OpaqueColor -> 'rgb(r, g, b)'."""
    if not color:
        return None
    inner = color.get("color") or color.get("opaqueColor") or color
    rgb = inner.get("rgbColor") if isinstance(inner, dict) else None
    if rgb is None:
        return None
    r, g, b = (_round(rgb.get(k, 0) * 255) for k in ("red", "green", "blue"))
    return f"rgb({r}, {g}, {b})"


def convert_font_size(size: dict | None) -> int | None:
    """Points -> pixels."""
    if not size or size.get("magnitude") is None:
        return None
    return _round(size["magnitude"] * PT_TO_PX)


def heading_level(paragraph: dict) -> int | None:
    named = (paragraph.get("paragraphStyle") or {}).get("namedStyleType") or ""
    match = _NAMED_HEADING_RE.fullmatch(named)
    if match:
        return int(match.group(1))
    heading_id = paragraph.get("headingId") or (paragraph.get("paragraphStyle") or {}).get("headingId")
    match = _HEADING_ID_RE.match(heading_id or "")
    return int(match.group(1)) if match else None


def text_run(content: str, style: dict | None) -> dict:
    style = style or {}
    return {
        "text": content,
        "styles": {
            "bold": bool(style.get("bold")),
            "italic": bool(style.get("italic")),
            "underline": bool(style.get("underline")),
            "strikethrough": bool(style.get("strikethrough")),
            "fontSize": convert_font_size(style.get("fontSize")),
            "fontFamily": style.get("weightedFontFamily", {}).get("fontFamily") or style.get("fontFamily"),
            "foregroundColor": convert_color(style.get("foregroundColor")) or DEFAULT_FOREGROUND,
            "backgroundColor": convert_color(style.get("backgroundColor")) or DEFAULT_BACKGROUND,
        },
    }


class DocsClient(GoogleClient):
    """Google Docs API v1."""

    def get_document(self, document_id: str) -> dict:
        return self.request("GET", f"{DOCS_API}/{quote(document_id)}")

    def get_document_content(self, document_id: str) -> list[dict]:
        return self.extract_content(self.get_document(document_id))

    @classmethod
    def extract_content(cls, document: dict) -> list[dict]:
        """Paragraphs with text and a table per table; empty paragraphs dropped."""
        content = []
        for element in (document.get("body") or {}).get("content", []):
            if "paragraph" in element:
                paragraph = cls.paragraph(element["paragraph"])
                if paragraph["text"].strip():
                    content.append(paragraph)
            elif "table" in element:
                content.append(cls.table(element["table"]))
        return content

    @staticmethod
    def paragraph(paragraph: dict) -> dict:
        runs = [
            text_run(el["textRun"].get("content", ""), el["textRun"].get("textStyle"))
            for el in paragraph.get("elements", [])
            if "textRun" in el
        ]
        style = paragraph.get("paragraphStyle") or {}
        return {
            "type": "paragraph",
            "text": "".join(run["text"] for run in runs),
            "headingLevel": heading_level(paragraph),
            "styles": {
                "alignment": style.get("alignment"),
                "lineSpacing": style.get("lineSpacing"),
                "spaceAbove": style.get("spaceAbove"),
                "spaceBelow": style.get("spaceBelow"),
            },
            "elements": runs,
        }

    @classmethod
    def table(cls, table: dict) -> dict:
        rows = []
        for row in table.get("tableRows", []):
            cells = []
            for cell in row.get("tableCells", []):
                cells.append([cls.paragraph(el["paragraph"]) for el in cell.get("content", []) if "paragraph" in el])
            rows.append(cells)
        return {"type": "table", "rows": rows}

    @staticmethod
    def search(content: list[dict], term: str) -> list[dict]:
        """Case-insensitive search over extracted content."""
        needle = term.lower()
        results = []
        for index, element in enumerate(content):
            if element["type"] == "paragraph" and needle in element["text"].lower():
                results.append(
                    {"type": "paragraph", "index": index, "text": element["text"], "headingLevel": element["headingLevel"]}
                )
            elif element["type"] == "table":
                for r, row in enumerate(element["rows"]):
                    for c, cell in enumerate(row):
                        for p, paragraph in enumerate(cell):
                            if needle in paragraph["text"].lower():
                                results.append(
                                    {
                                        "type": "table_cell",
                                        "tableIndex": index,
                                        "rowIndex": r,
                                        "cellIndex": c,
                                        "elementIndex": p,
                                        "text": paragraph["text"],
                                    }
                                )
        return results


def _emu_to_px(dimension: dict | None) -> int:
    if not dimension or not dimension.get("magnitude"):
        return 0
    if dimension.get("unit") == "PT":
        return _round(dimension["magnitude"] * PT_TO_PX)
    return _round(dimension["magnitude"] / EMU_PER_INCH * 96)


class SlidesClient(GoogleClient):
    """Google Slides API v1."""

    def get_presentation(self, presentation_id: str) -> dict:
        return self.request("GET", f"{SLIDES_API}/{quote(presentation_id)}")

    def get_presentation_content(self, presentation_id: str) -> dict:
        return self.extract_content(self.get_presentation(presentation_id))

    @classmethod
    def extract_content(cls, presentation: dict) -> dict:
        slides = []
        for number, slide in enumerate(presentation.get("slides", []), start=1):
            elements = []
            for page_element in slide.get("pageElements", []):
                element = cls.page_element(page_element)
                if element is not None:
                    elements.append(element)
            slides.append({"slideId": slide.get("objectId"), "slideNumber": number, "elements": elements})
        return {
            "presentationId": presentation.get("presentationId"),
            "title": presentation.get("title"),
            "slides": slides,
        }

    @staticmethod
    def text_paragraph(text: dict | None, object_id: str | None = None) -> dict:
        runs = [
            text_run(el["textRun"].get("content", ""), el["textRun"].get("style"))
            for el in (text or {}).get("textElements", [])
            if "textRun" in el
        ]
        return {
            "type": "paragraph",
            "objectId": object_id,
            "text": "".join(run["text"] for run in runs),
            "elements": runs,
        }

    @classmethod
    def page_element(cls, element: dict) -> dict | None:
        object_id = element.get("objectId")
        size = element.get("size") or {}
        box = {"width": _emu_to_px(size.get("width")), "height": _emu_to_px(size.get("height"))}
        if "shape" in element:
            shape = element["shape"]
            if not shape.get("text"):
                return None
            paragraph = cls.text_paragraph(shape["text"], object_id)
            paragraph.update(shapeType=shape.get("shapeType"), size=box)
            return paragraph
        if "table" in element:
            rows = [
                [[cls.text_paragraph(cell.get("text"))] for cell in row.get("tableCells", [])]
                for row in element["table"].get("tableRows", [])
            ]
            return {"type": "table", "objectId": object_id, "rows": rows, "size": box}
        if "image" in element:
            return {"type": "image", "objectId": object_id, "imageUrl": element["image"].get("contentUrl"), "size": box}
        return None
