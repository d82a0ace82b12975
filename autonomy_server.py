# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
# ]
# ///
"""
Agent Autonomy MCP Server ("agent-autonomy").

Workflows are named command sequences stored in WORKFLOWS_FILE
(default <WORKING_DIRECTORY>/.cursor/workflows.json):

    {
      "ai-test": {
        "description": "Run the test suite",
        "commands": ["npm run lint", "npm test"],
        "auto_approve": true,
        "working_directory": "/path/to/project",
        "timeout": 60000,
        "on_error": "stop",
        "environment": {"CI": "1"}
      }
    }

Tools:
  1. execute_workflow    - Run a workflow's commands in order
  2. list_workflows      - Summary of the known workflows
  3. register_workflow   - Add or replace a workflow and persist it
  4. check_approval      - Would a command be auto-approved?
  5. register_agent      - Register a testing agent
  6. record_test_result  - Record one agent test run
  7. get_agent_stats     - Per-agent or overall success/error rates
  8. get_recent_results  - Most recent test runs

Agent data is persisted in AGENT_MONITOR_FILE
(default <WORKING_DIRECTORY>/.cursor/agent-monitor.json).
"""

import json
import logging
import os
import secrets
import subprocess
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

log = logging.getLogger("autonomy_server")

DEFAULT_TIMEOUT_MS = 60000
ON_ERROR_VALUES = ("stop", "continue")
MAX_HISTORY_ITEMS = 50
INACTIVE_AFTER = timedelta(minutes=5)
SUCCESS_STATUSES = ("completed", "success")
ERROR_STATUSES = ("error", "failed")

mcp = FastMCP(
    "agent-autonomy",
    instructions=(
        "Runs predefined command workflows without per-command confirmation. "
        "Use list_workflows to see what exists and check_approval before "
        "running an ad-hoc command. Agent tools track accessibility test runs."
    ),
)


def get_working_directory() -> str:
    return os.environ.get("WORKING_DIRECTORY") or os.getcwd()


def _default_workflows_path() -> Path:
    env_path = os.environ.get("WORKFLOWS_FILE")
    if env_path:
        return Path(env_path)
    return Path(get_working_directory()) / ".cursor" / "workflows.json"


def _default_monitor_path() -> Path:
    env_path = os.environ.get("AGENT_MONITOR_FILE")
    if env_path:
        return Path(env_path)
    return Path(get_working_directory()) / ".cursor" / "agent-monitor.json"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _safe_write_json(path: Path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    os.replace(tmp, path)


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------

class WorkflowEngine:
    """Named command sequences loaded from a JSON file."""

    def __init__(self, path: str | Path | None = None, working_directory: str | None = None):
        self.path = Path(path) if path else _default_workflows_path()
        self.working_directory = working_directory or get_working_directory()
        self.workflows: dict[str, dict] = {}
        self.load()

    def load(self):
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top level must be an object")
        except (OSError, ValueError) as e:
            log.warning("No usable workflows file at %s (%s)", self.path, e)
            self.workflows = {
                "example": {
                    "description": "Example workflow",
                    "commands": ['echo "No workflows configured"'],
                    "auto_approve": True,
                    "working_directory": self.working_directory,
                    "timeout": 10000,
                    "on_error": "stop",
                }
            }
            return
        self.workflows = {name: wf for name, wf in data.items() if isinstance(wf, dict)}
        log.info("Loaded %d workflows from %s", len(self.workflows), self.path)

    def get(self, name: str) -> dict:
        workflow = self.workflows.get(name)
        if workflow is None:
            raise KeyError(f"Workflow '{name}' not found. Available: {', '.join(self.workflows)}")
        return workflow

    def run_command(self, command: str, workflow: dict, step: int) -> dict:
        """Run one workflow command through the shell."""
        total = len(workflow.get("commands") or [])
        log.info("[%d/%d] Executing: %s", step, total, command)
        env = {**os.environ, **{k: str(v) for k, v in (workflow.get("environment") or {}).items()}}
        timeout_ms = workflow.get("timeout") or DEFAULT_TIMEOUT_MS
        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=workflow.get("working_directory") or self.working_directory,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired:
            return {"step": step, "command": command, "success": False, "error": f"Timed out after {timeout_ms}ms"}
        except OSError as e:
            return {"step": step, "command": command, "success": False, "error": str(e)}

        result = {
            "step": step,
            "command": command,
            "success": proc.returncode == 0,
            "stdout": proc.stdout.strip(),
            "stderr": proc.stderr.strip(),
        }
        if proc.returncode != 0:
            result["error"] = f"Command failed with exit code {proc.returncode}" + (
                f": {result['stderr']}" if result["stderr"] else ""
            )
        return result

    def execute(self, name: str) -> dict:
        workflow = self.get(name)
        commands = workflow.get("commands") or []
        stop_on_error = workflow.get("on_error", "stop") == "stop"
        started = time.monotonic()
        results = []
        for step, command in enumerate(commands, start=1):
            result = self.run_command(command, workflow, step)
            results.append(result)
            if not result["success"] and stop_on_error:
                log.warning("Workflow '%s' stopped at step %d", name, step)
                break
        return {
            "success": all(r["success"] for r in results),
            "workflow": name,
            "steps_executed": len(results),
            "steps_total": len(commands),
            "results": results,
            "duration_ms": round((time.monotonic() - started) * 1000),
        }

    def summaries(self) -> list[dict]:
        return [
            {
                "name": name,
                "description": wf.get("description", ""),
                "command_count": len(wf.get("commands") or []),
                "auto_approve": bool(wf.get("auto_approve")),
            }
            for name, wf in self.workflows.items()
        ]

    def register(
        self,
        name: str,
        commands: list[str],
        auto_approve: bool = False,
        working_directory: str | None = None,
        description: str = "",
        timeout: int | None = None,
        on_error: str = "stop",
        environment: dict | None = None,
    ) -> dict:
        """Add or replace a workflow and write the file."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Workflow name must not be empty")
        commands = [c for c in (commands or []) if isinstance(c, str) and c.strip()]
        if not commands:
            raise ValueError("Workflow needs at least one command")
        if on_error not in ON_ERROR_VALUES:
            raise ValueError(f"on_error must be one of: {', '.join(ON_ERROR_VALUES)}")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be a positive number of milliseconds")

        workflow = {
            "description": description,
            "commands": commands,
            "auto_approve": bool(auto_approve),
            "working_directory": working_directory or self.working_directory,
            "timeout": timeout or DEFAULT_TIMEOUT_MS,
            "on_error": on_error,
        }
        if environment:
            workflow["environment"] = environment

        # Persist only what came from the file plus this entry.
        try:
            on_disk = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(on_disk, dict):
                on_disk = {}
        except (OSError, ValueError):
            on_disk = {}
        on_disk[name] = workflow
        _safe_write_json(self.path, on_disk)

        self.workflows[name] = workflow
        log.info("Registered workflow '%s' (%d commands)", name, len(commands))
        return workflow

    def check_approval(self, command: str) -> dict:
        words = command.split()
        for name, wf in self.workflows.items():
            if not wf.get("auto_approve"):
                continue
            for approved in wf.get("commands") or []:
                if command.strip() == approved.strip():
                    return {"command": command, "approved": True, "matched_workflow": name}
                approved_words = approved.split()
                if len(words) >= 2 and len(approved_words) >= 2 and words[:2] == approved_words[:2]:
                    return {"command": command, "approved": True, "matched_workflow": name}
        return {"command": command, "approved": False, "matched_workflow": None}


# ---------------------------------------------------------------------------
# Agent monitor
# ---------------------------------------------------------------------------

def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


class AgentMonitor:
    """Registered agents and their recent test results."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else _default_monitor_path()
        self.agents: dict[str, dict] = {}
        self.results: list[dict] = []
        self.load()

    def load(self):
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as e:
            log.warning("Failed to load agent data from %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            log.warning("Ignoring agent data in %s: top level is not an object", self.path)
            return

        agents = data.get("agents")
        results = data.get("results")
        for agent in agents if isinstance(agents, list) else []:
            if not isinstance(agent, dict) or "id" not in agent:
                continue
            agent.setdefault("name", "Unknown Agent")
            agent.setdefault("status", "active")
            agent.setdefault("lastSeen", _now())
            for counter in ("testCount", "successCount", "errorCount"):
                if not isinstance(agent.get(counter), int):
                    agent[counter] = 0
            self.agents[agent["id"]] = agent
        self.results = [r for r in results if isinstance(r, dict)] if isinstance(results, list) else []

    def save(self):
        _safe_write_json(self.path, {"agents": list(self.agents.values()), "results": self.results})

    def register_agent(
        self,
        name: str | None = None,
        type: str = "mobile",
        capabilities: list[str] | None = None,
        metadata: dict | None = None,
    ) -> str:
        agent_id = f"agent_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
        self.agents[agent_id] = {
            "id": agent_id,
            "name": name or "Unknown Agent",
            "type": type or "mobile",
            "status": "active",
            "capabilities": capabilities or [],
            "lastSeen": _now(),
            "testCount": 0,
            "successCount": 0,
            "errorCount": 0,
            "metadata": metadata or {},
        }
        self.save()
        log.info("Agent %s registered as %s", name, agent_id)
        return agent_id

    def record_test_result(
        self,
        agent_id: str | None = None,
        tool: str = "",
        document: str = "",
        status: str = "completed",
        score: float = 0,
        issues: list | None = None,
        recommendations: list | None = None,
        metadata: dict | None = None,
    ) -> dict:
        result = {
            "id": f"test_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
            "timestamp": _now(),
            "agentId": agent_id,
            "tool": tool,
            "document": document,
            "status": status or "completed",
            "score": score or 0,
            "issues": issues or [],
            "recommendations": recommendations or [],
            "metadata": metadata or {},
        }
        self.results.insert(0, result)
        del self.results[MAX_HISTORY_ITEMS:]

        agent = self.agents.get(agent_id) if agent_id else None
        if agent is not None:
            agent["testCount"] += 1
            if result["status"] in SUCCESS_STATUSES:
                agent["successCount"] += 1
            elif result["status"] in ERROR_STATUSES:
                agent["errorCount"] += 1
            agent["lastSeen"] = result["timestamp"]
            agent["status"] = "active"

        self.save()
        return result

    def mark_inactive(self, now: datetime | None = None) -> list[str]:
        """Flag agents not seen for five minutes. Returns their ids."""
        cutoff = (now or datetime.now(timezone.utc)) - INACTIVE_AFTER
        stale = []
        for agent in self.agents.values():
            if agent.get("status") != "active":
                continue
            try:
                last_seen = datetime.fromisoformat(agent["lastSeen"])
            except (KeyError, TypeError, ValueError):
                continue
            if last_seen < cutoff:
                agent["status"] = "inactive"
                stale.append(agent["id"])
        if stale:
            self.save()
        return stale

    def stats(self, agent_id: str | None = None) -> dict | None:
        self.mark_inactive()
        if agent_id:
            agent = self.agents.get(agent_id)
            if agent is None:
                return None
            return {
                "name": agent["name"],
                "status": agent["status"],
                "testCount": agent["testCount"],
                "successCount": agent["successCount"],
                "errorCount": agent["errorCount"],
                "successRate": _rate(agent["successCount"], agent["testCount"]),
                "lastSeen": agent["lastSeen"],
            }

        agents = list(self.agents.values())
        total_tests = sum(a["testCount"] for a in agents)
        return {
            "totalAgents": len(agents),
            "activeAgents": sum(1 for a in agents if a.get("status") == "active"),
            "totalTests": total_tests,
            "successRate": _rate(sum(a["successCount"] for a in agents), total_tests),
            "errorRate": _rate(sum(a["errorCount"] for a in agents), total_tests),
        }

    def recent(self, limit: int = 10) -> list[dict]:
        return self.results[:max(limit, 0)]


_engine: WorkflowEngine | None = None
_monitor: AgentMonitor | None = None


def get_engine() -> WorkflowEngine:
    global _engine
    if _engine is None:
        _engine = WorkflowEngine()
    return _engine


def get_monitor() -> AgentMonitor:
    global _monitor
    if _monitor is None:
        _monitor = AgentMonitor()
    return _monitor


def format_workflow_report(result: dict) -> str:
    lines = [f"Executing workflow: {result['workflow']}", ""]
    for r in result["results"]:
        mark = "OK" if r["success"] else "FAILED"
        line = f"[{r['step']}/{result['steps_total']}] {mark} {r['command']}"
        if r.get("stdout"):
            line += f"\n   Output: {r['stdout']}"
        if r.get("error"):
            line += f"\n   Error: {r['error']}"
        lines.append(line)
    lines.append("")
    if result["success"]:
        lines.append(f"Workflow completed successfully in {result['duration_ms'] / 1000:.1f}s")
    else:
        lines.append(f"Workflow failed after {result['steps_executed']}/{result['steps_total']} steps")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Tool 1: execute_workflow
# ---------------------------------------------------------------------------

@mcp.tool()
def execute_workflow(workflow_name: str) -> str:
    """Execute a predefined workflow by name with autonomous approval.

    Args:
        workflow_name: Name of workflow to execute (e.g., "ai-start", "ai-test")
    """
    try:
        result = get_engine().execute(workflow_name)
    except KeyError as e:
        raise ToolError(e.args[0])
    report = format_workflow_report(result)
    if not result["success"]:
        raise ToolError(report)
    return report


# ---------------------------------------------------------------------------
# Tool 2: list_workflows
# ---------------------------------------------------------------------------

@mcp.tool()
def list_workflows() -> str:
    """List all available workflows."""
    workflows = get_engine().summaries()
    lines = [f"Available Workflows ({len(workflows)}):", ""]
    for w in workflows:
        lines.append(
            f"- {w['name']} - {w['description']}\n"
            f"  Commands: {w['command_count']}, Auto-approve: {'yes' if w['auto_approve'] else 'no'}"
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Tool 3: register_workflow
# ---------------------------------------------------------------------------

@mcp.tool()
def register_workflow(
    name: str,
    commands: list[str],
    auto_approve: bool = False,
    working_directory: str | None = None,
    description: str = "",
) -> str:
    """Register a new workflow at runtime (persisted to the workflows file).

    Args:
        name: Unique workflow name
        commands: Commands to execute in sequence
        auto_approve: Execute without user confirmation
        working_directory: Directory to run commands in
        description: Short description shown by list_workflows
    """
    engine = get_engine()
    try:
        workflow = engine.register(name, commands, auto_approve, working_directory, description)
    except ValueError as e:
        raise ToolError(str(e))
    except OSError as e:
        raise ToolError(f"Failed to write {engine.path}: {e}")
    return _fmt({"registered": name.strip(), "path": str(engine.path), "workflow": workflow})


# ---------------------------------------------------------------------------
# Tool 4: check_approval
# ---------------------------------------------------------------------------

@mcp.tool()
def check_approval(command: str) -> str:
    """Check if a command would be auto-approved based on workflow patterns.

    Args:
        command: Command to check
    """
    return _fmt(get_engine().check_approval(command))


# ---------------------------------------------------------------------------
# Tools 5-8: agent monitor
# ---------------------------------------------------------------------------

@mcp.tool()
def register_agent(name: str, type: str = "mobile", capabilities: list[str] | None = None) -> str:
    """Register a testing agent and return its id.

    Args:
        name: Display name of the agent
        type: Agent type (default: mobile)
        capabilities: Tools the agent can run
    """
    agent_id = get_monitor().register_agent(name, type, capabilities)
    return _fmt({"agentId": agent_id})


@mcp.tool()
def record_test_result(
    agent_id: str,
    tool: str,
    document: str = "",
    status: str = "completed",
    score: float = 0,
    issues: list[str] | None = None,
    recommendations: list[str] | None = None,
) -> str:
    """Record the outcome of one accessibility test run.

    Args:
        agent_id: Id returned by register_agent
        tool: Tool that ran the test
        document: Document or URL that was tested
        status: completed, success, error or failed
        score: Score of the run
        issues: Issues found
        recommendations: Recommendations produced
    """
    monitor = get_monitor()
    if agent_id not in monitor.agents:
        raise ToolError(f"Agent {agent_id} not found")
    return _fmt(monitor.record_test_result(agent_id, tool, document, status, score, issues, recommendations))


@mcp.tool()
def get_agent_stats(agent_id: str | None = None) -> str:
    """Success and error rates for one agent, or across all agents.

    Args:
        agent_id: Optional agent id
    """
    stats = get_monitor().stats(agent_id)
    if stats is None:
        raise ToolError(f"Agent {agent_id} not found")
    return _fmt(stats)


@mcp.tool()
def get_recent_results(limit: int = 10) -> str:
    """Most recent test results, newest first.

    Args:
        limit: Number of results to return
    """
    return _fmt(get_monitor().recent(limit))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    get_engine()
    log.info("Agent Autonomy MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
