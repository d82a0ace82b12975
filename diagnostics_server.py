# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
#     "httpx>=0.27",
#     "psutil>=5.9",
# ]
# ///
"""
Diagnostics MCP Server ("everything-minimal").

Provides 4 tools for checking an MCP setup:
  1. validate_protocol  - Validate a JSON-RPC 2.0 message
  2. test_connection    - HTTP GET an endpoint and record latency
  3. get_system_info    - Platform, interpreter, memory and uptime
  4. run_diagnostics    - Memory / CPU / disk health checks
"""

import json
import logging
import os
import platform
import sys
import time
from datetime import datetime, timezone

import httpx
import psutil
from mcp.server.fastmcp import FastMCP

log = logging.getLogger("diagnostics_server")

CONNECT_TIMEOUT = 10.0
WARNING_PERCENT = 90.0
START_TIME = time.time()

mcp = FastMCP(
    "everything-minimal",
    instructions="Diagnostics for MCP servers and the host they run on.",
)

# Connections tested during this process, by id.
connections: dict[str, dict] = {}

# Test hook: replaced with an httpx.MockTransport in tests.
_transport: httpx.AsyncBaseTransport | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False, default=str)


def _mb(n: int) -> float:
    return round(n / 1024 / 1024, 1)


def check_jsonrpc(message) -> list[tuple[str, bool, str]]:
    """(check name, passed, detail) for each JSON-RPC 2.0 rule."""
    checks = []
    is_object = isinstance(message, dict)
    checks.append(("message is an object", is_object, type(message).__name__))
    if not is_object:
        return checks

    checks.append(('jsonrpc is "2.0"', message.get("jsonrpc") == "2.0", repr(message.get("jsonrpc"))))

    is_request = "method" in message
    is_response = "result" in message or "error" in message
    checks.append(("has method, result or error", is_request or is_response, ""))
    if is_request:
        checks.append(("method is a string", isinstance(message["method"], str), repr(message["method"])))
    if "result" in message and "error" in message:
        checks.append(("result and error are exclusive", False, "both present"))
    if "error" in message:
        error = message["error"]
        ok = isinstance(error, dict) and isinstance(error.get("code"), int) and isinstance(error.get("message"), str)
        checks.append(("error has integer code and string message", ok, ""))

    if "id" in message:
        msg_id = message["id"]
        ok = msg_id is None or (isinstance(msg_id, (str, int, float)) and not isinstance(msg_id, bool))
        checks.append(("id is a string, number or null", ok, repr(msg_id)))
    elif is_response:
        checks.append(("response has an id", False, "missing"))

    if "params" in message:
        checks.append(("params is an object or array", isinstance(message["params"], (dict, list)), ""))
    return checks


def _check_usage(percent: float, **detail) -> dict:
    return {
        "status": "warning" if percent >= WARNING_PERCENT else "ok",
        "percent": round(percent, 1),
        **detail,
    }


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
def validate_protocol(protocol: str) -> str:
    """Validate MCP protocol compliance of a JSON-RPC message.

    Args:
        protocol: Protocol string to validate
    """
    try:
        message = json.loads(protocol)
    except json.JSONDecodeError as e:
        checks = [("valid JSON", False, str(e))]
    else:
        checks = [("valid JSON", True, "")] + check_jsonrpc(message)

    is_valid = all(passed for _, passed, _ in checks)
    return _fmt(
        {
            "protocol": protocol,
            "isValid": is_valid,
            "checks": [
                f"{name}: {'PASSED' if passed else 'FAILED'}" + (f" ({detail})" if detail and not passed else "")
                for name, passed, detail in checks
            ],
            "timestamp": _now(),
        }
    )


@mcp.tool()
async def test_connection(endpoint: str) -> str:
    """Test connection to an MCP endpoint.

    Args:
        endpoint: Endpoint URL to test connection
    """
    connection_id = f"conn_{int(time.time() * 1000)}"
    record = {"id": connection_id, "endpoint": endpoint, "timestamp": _now()}
    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=CONNECT_TIMEOUT, transport=_transport) as client:
            response = await client.get(endpoint)
        record.update(status="connected", statusCode=response.status_code)
    except httpx.HTTPError as e:
        log.info("Connection to %s failed: %s", endpoint, e)
        record.update(status="failed", statusCode=None, error=str(e) or type(e).__name__)
    record["latency"] = round((time.perf_counter() - started) * 1000)

    connections[connection_id] = record
    return _fmt(record)


@mcp.tool()
def get_system_info() -> str:
    """Get system information and status."""
    proc = psutil.Process()
    mem = proc.memory_info()
    system = psutil.virtual_memory()
    return _fmt(
        {
            "platform": sys.platform,
            "system": platform.platform(),
            "pythonVersion": platform.python_version(),
            "memory": {
                "rssMB": _mb(mem.rss),
                "vmsMB": _mb(mem.vms),
                "systemTotalMB": _mb(system.total),
                "systemAvailableMB": _mb(system.available),
            },
            "uptime": round(time.time() - START_TIME, 1),
            "timestamp": _now(),
            "environment": {
                "MCP_ENV": os.environ.get("MCP_ENV", "development"),
                "testedConnections": len(connections),
            },
        }
    )


@mcp.tool()
def run_diagnostics() -> str:
    """Run system diagnostics and health checks."""
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage(os.path.abspath(os.sep))
    checks = {
        "memory": _check_usage(memory.percent, availableMB=_mb(memory.available)),
        "cpu": _check_usage(psutil.cpu_percent(interval=0.1), cores=psutil.cpu_count()),
        "disk": _check_usage(disk.percent, freeMB=_mb(disk.free)),
    }
    degraded = [name for name, check in checks.items() if check["status"] != "ok"]
    if degraded:
        recommendations = [f"{name} usage is at or above {WARNING_PERCENT:g}%" for name in degraded]
    else:
        recommendations = ["System is operating within normal parameters"]
    return _fmt(
        {
            "timestamp": _now(),
            "status": "degraded" if degraded else "healthy",
            "checks": checks,
            "recommendations": recommendations,
        }
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Everything Minimal MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
