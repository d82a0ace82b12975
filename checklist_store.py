"""
AccessiList Checklist Store.

One JSON blob per checklist session, stored as ``<saves>/<sessionKey>.json``.
Provides the save / restore / list / delete / instantiate operations used by
the HTTP API and the management CLI, plus the checklist type catalogue and
task status helpers.
"""

import json
import logging
import os
import re
import secrets
import string
import time
from pathlib import Path

log = logging.getLogger("checklist_store")

BASE_DIR = Path(__file__).parent

SAVES_DIR = Path(os.environ.get("CHECKLIST_SAVES_DIR", str(BASE_DIR / "saves")))
TYPES_FILE = Path(os.environ.get("CHECKLIST_TYPES_FILE", str(BASE_DIR / "checklist_types.json")))

SESSION_KEY_RE = re.compile(r"[a-zA-Z0-9]{3}")
SESSION_KEY_ALPHABET = string.ascii_uppercase + string.digits
BLOB_VERSION = "1.0"

STATUS_VALUES = ("pending", "in-progress", "completed")
STATUS_LABELS = {
    "pending": "Task status: Pending",
    "in-progress": "Task status: In Progress",
    "completed": "Task status: Completed",
}

FALLBACK_TYPES = {
    "types": {
        "word": {"displayName": "Word", "jsonFile": "word.json", "category": "Microsoft"},
        "powerpoint": {"displayName": "PowerPoint", "jsonFile": "powerpoint.json", "category": "Microsoft"},
        "excel": {"displayName": "Excel", "jsonFile": "excel.json", "category": "Microsoft"},
        "docs": {"displayName": "Docs", "jsonFile": "docs.json", "category": "Google"},
        "slides": {"displayName": "Slides", "jsonFile": "slides.json", "category": "Google"},
        "camtasia": {"displayName": "Camtasia", "jsonFile": "camtasia.json", "category": "Other"},
        "dojo": {"displayName": "Dojo", "jsonFile": "dojo.json", "category": "Other"},
    },
    "defaultType": "camtasia",
    "categories": {
        "Microsoft": ["word", "powerpoint", "excel"],
        "Google": ["docs", "slides"],
        "Other": ["camtasia", "dojo"],
    },
}


class ChecklistError(Exception):
    """Store failure carrying the HTTP status the API should answer with."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


# ---------------------------------------------------------------------------
# Type catalogue
# ---------------------------------------------------------------------------

class ChecklistTypes:
    """Checklist type catalogue loaded from checklist_types.json."""

    def __init__(self, config: dict):
        self.config = config

    @classmethod
    def load(cls, path: str | Path | None = None) -> "ChecklistTypes":
        path = Path(path) if path else TYPES_FILE
        if not path.exists():
            log.debug("Type catalogue %s missing, using fallback", path)
            return cls(FALLBACK_TYPES)
        try:
            config = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Could not read type catalogue %s: %s", path, e)
            return cls(FALLBACK_TYPES)
        return cls(config if isinstance(config, dict) else FALLBACK_TYPES)

    @property
    def types(self) -> dict:
        return self.config.get("types") or {}

    def available_types(self) -> list[str]:
        return list(self.types)

    def default_type(self) -> str:
        return self.config.get("defaultType") or "camtasia"

    def validate_type(self, slug) -> str | None:
        if not isinstance(slug, str) or not slug:
            return None
        return slug if slug in self.types else None

    def display_name(self, slug: str | None) -> str:
        if not slug:
            return "Unknown"
        data = self.types.get(slug)
        if data and data.get("displayName"):
            return data["displayName"]
        return slug[:1].upper() + slug[1:]

    def slug_for(self, display_name) -> str | None:
        """Map a display name (or slug) to a valid slug."""
        if not isinstance(display_name, str) or not display_name:
            return self.default_type()
        for slug, data in self.types.items():
            if str(data.get("displayName", "")).lower() == display_name.lower():
                return slug
        return self.validate_type(display_name.strip().lower())

    def format_type_name(self, value) -> str:
        if not value:
            return "Unknown"
        return self.display_name(self.slug_for(value))

    def to_dict(self) -> dict:
        return {
            "types": self.types,
            "defaultType": self.default_type(),
            "categories": self.config.get("categories") or {},
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return round(time.time() * 1000)


def _saves_dir(saves_dir: str | Path | None) -> Path:
    return Path(saves_dir) if saves_dir else SAVES_DIR


def validate_session_key(session_key) -> str:
    if not isinstance(session_key, str) or not SESSION_KEY_RE.fullmatch(session_key):
        raise ChecklistError("Invalid session key", 400)
    return session_key


def session_path(session_key: str, saves_dir: str | Path | None = None) -> Path:
    return _saves_dir(saves_dir) / f"{validate_session_key(session_key)}.json"


def _ensure_saves_dir(saves_dir: str | Path | None) -> Path:
    path = _saves_dir(saves_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ChecklistError(f"Failed to create saves directory: {e}", 500)
    return path


def _read_blob(path: Path) -> dict | None:
    """Decode a session file; None when unreadable or not a JSON object."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _write_blob(path: Path, data: dict, failure: str):
    try:
        payload = json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ChecklistError(f"Failed to encode JSON: {e}", 500)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        log.error("%s (%s): %s", failure, path, e)
        tmp.unlink(missing_ok=True)
        raise ChecklistError(failure, 500)


def _require_payload(data) -> dict:
    if not isinstance(data, dict) or not data or "sessionKey" not in data:
        raise ChecklistError("Invalid data format", 400)
    return data


def generate_session_key(saves_dir: str | Path | None = None) -> str:
    """Return a random 3-character key not used by an existing session."""
    directory = _saves_dir(saves_dir)
    for _ in range(1000):
        key = "".join(secrets.choice(SESSION_KEY_ALPHABET) for _ in range(3))
        if not (directory / f"{key}.json").exists():
            return key
    raise ChecklistError("No free session key available", 500)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def save(data, saves_dir: str | Path | None = None, types: ChecklistTypes | None = None) -> dict:
    """Save (create or overwrite) a session blob.

    Existing metadata is preserved underneath the incoming metadata,
    the type fields are normalised and ``metadata.lastModified`` is set.
    Returns the blob as written.
    """
    data = dict(_require_payload(data))
    key = validate_session_key(data["sessionKey"])
    types = types or ChecklistTypes.load()
    directory = _ensure_saves_dir(saves_dir)
    path = directory / f"{key}.json"

    incoming_meta = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    existing = _read_blob(path) if path.exists() else None
    if existing and isinstance(existing.get("metadata"), dict):
        data["metadata"] = {**existing["metadata"], **incoming_meta}
    else:
        data["metadata"] = dict(incoming_meta)

    if "typeSlug" in data and data["typeSlug"] is not None:
        slug = types.validate_type(data["typeSlug"])
    elif data.get("type") is not None:
        slug = types.validate_type(types.slug_for(data["type"]))
    else:
        raise ChecklistError("Missing checklist type", 400)
    if slug is None:
        raise ChecklistError("Invalid checklist type", 400)

    data["typeSlug"] = slug
    data["type"] = types.display_name(slug)
    data["metadata"]["lastModified"] = _now_ms()

    _write_blob(path, data, "Failed to save data")
    log.info("Saved session %s (%s)", key, slug)
    return data


def restore(session_key, saves_dir: str | Path | None = None) -> dict:
    """Return the stored blob for a session."""
    if not session_key:
        raise ChecklistError("Invalid session key", 400)
    path = session_path(session_key, saves_dir)
    if not path.exists():
        raise ChecklistError("No saved data found", 404)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        raise ChecklistError("Failed to read saved data", 500)
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        raise ChecklistError("Invalid saved data format", 500)
    if decoded is None:
        raise ChecklistError("Invalid saved data format", 500)
    return decoded


def list_sessions(saves_dir: str | Path | None = None) -> list[dict]:
    """Summaries of all stored sessions, newest first."""
    directory = _saves_dir(saves_dir)
    if not directory.exists():
        return []

    instances = []
    for path in directory.glob("*.json"):
        data = _read_blob(path)
        if not data:
            continue
        created = round(path.stat().st_mtime * 1000)
        instance = {
            "sessionKey": path.stem,
            "timestamp": created,
            "created": created,
            "type": data.get("type") or "Unknown",
            "typeSlug": data.get("typeSlug"),
            "metadata": {"version": BLOB_VERSION, "created": created},
        }
        metadata = data.get("metadata")
        # "Updated" stays empty until the first save
        if isinstance(metadata, dict) and "lastModified" in metadata:
            instance["metadata"]["lastModified"] = metadata["lastModified"]
        instances.append(instance)

    instances.sort(key=lambda item: item["timestamp"], reverse=True)
    return instances


def delete(session_key, saves_dir: str | Path | None = None):
    """Remove a stored session."""
    if not session_key:
        raise ChecklistError("Session key is required", 400)
    path = session_path(session_key, saves_dir)
    if not path.exists():
        raise ChecklistError("Instance not found", 404)
    try:
        path.unlink()
    except OSError as e:
        log.error("Failed to delete %s: %s", path, e)
        raise ChecklistError("Failed to delete instance", 500)
    log.info("Deleted session %s", session_key)


def instantiate(data, saves_dir: str | Path | None = None, types: ChecklistTypes | None = None) -> bool:
    """Create a placeholder session if it does not exist yet.

    Returns True when a file was created, False when it already existed.
    The placeholder carries no ``lastModified`` so listings show it as
    never saved.
    """
    data = _require_payload(data)
    key = validate_session_key(data["sessionKey"])
    types = types or ChecklistTypes.load()
    directory = _ensure_saves_dir(saves_dir)
    path = directory / f"{key}.json"

    if path.exists():
        return False

    raw_type = data.get("typeSlug") or data.get("type")
    slug = types.validate_type(types.slug_for(raw_type)) if raw_type else None
    if slug is None:
        raise ChecklistError("Invalid or missing checklist type", 400)

    state = data.get("state")
    placeholder = {
        "sessionKey": key,
        "type": types.display_name(slug),
        "typeSlug": slug,
        "metadata": {"version": BLOB_VERSION, "created": _now_ms()},
        "state": state if state is not None else {},
    }
    _write_blob(path, placeholder, "Failed to write placeholder file")
    log.info("Instantiated session %s (%s)", key, slug)
    return True


def session_type(
    session_key: str,
    default: str = "camtasia",
    saves_dir: str | Path | None = None,
    types: ChecklistTypes | None = None,
) -> str | None:
    """Checklist type slug of a session, for choosing which checklist to render."""
    try:
        path = session_path(session_key, saves_dir)
    except ChecklistError:
        return default
    if not path.exists():
        return default
    data = _read_blob(path)
    if not data:
        return default

    types = types or ChecklistTypes.load()
    if data.get("typeSlug"):
        validated = types.validate_type(data["typeSlug"])
        if validated is not None:
            return validated
    if data.get("type"):
        validated = types.validate_type(types.slug_for(data["type"]))
        if validated is not None:
            return validated
    return None


# ---------------------------------------------------------------------------
# Task status
# ---------------------------------------------------------------------------

def next_status(status: str | None) -> str:
    """Cycle pending -> in-progress -> completed -> pending."""
    if status not in STATUS_VALUES:
        return STATUS_VALUES[0]
    return STATUS_VALUES[(STATUS_VALUES.index(status) + 1) % len(STATUS_VALUES)]


def status_label(status: str | None) -> str:
    return STATUS_LABELS.get(status, STATUS_LABELS["pending"])


def progress(state: dict | None) -> dict:
    """Count task statuses recorded in a session state."""
    buttons = (state or {}).get("statusButtons") or {}
    counts = {value: 0 for value in STATUS_VALUES}
    for value in buttons.values():
        counts[value if value in counts else "pending"] += 1
    total = sum(counts.values())
    return {
        "total": total,
        "pending": counts["pending"],
        "inProgress": counts["in-progress"],
        "completed": counts["completed"],
        "percentComplete": round(counts["completed"] / total * 100, 1) if total else 0.0,
    }
