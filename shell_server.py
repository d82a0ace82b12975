# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
#     "psutil>=5.9",
# ]
# ///
"""
Shell MCP Server ("shell-minimal").

Provides 4 tools for running commands on the host:
  1. execute_command  - Run an allow-listed command (no shell, with timeout)
  2. list_processes   - List running processes, optionally filtered
  3. kill_process     - Send a signal to a process
  4. get_environment  - Read an environment variable or a system summary

Allowed commands come from ALLOWED_COMMANDS (comma-separated),
the default working directory from WORKING_DIRECTORY.
"""

import getpass
import logging
import os
import platform
import shlex
import signal as signals
import subprocess

import psutil
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

log = logging.getLogger("shell_server")

DEFAULT_ALLOWED_COMMANDS = [
    "npm", "git", "node", "php", "composer", "curl", "wget", "ls", "cat",
    "grep", "find", "chmod", "chown", "mkdir", "rm", "cp", "mv",
]

mcp = FastMCP(
    "shell-minimal",
    instructions=(
        "Runs allow-listed shell commands on the host. Only the first word of "
        "execute_command's command is checked against the allow list; call "
        "get_environment() to see the list and the default working directory."
    ),
)


def get_allowed_commands() -> list[str]:
    allowed = os.environ.get("ALLOWED_COMMANDS")
    if allowed:
        return [cmd.strip() for cmd in allowed.split(",") if cmd.strip()]
    return list(DEFAULT_ALLOWED_COMMANDS)


def get_working_directory() -> str:
    return os.environ.get("WORKING_DIRECTORY") or os.getcwd()


def get_timeout() -> float:
    return float(os.environ.get("SHELL_COMMAND_TIMEOUT", "30"))


def _resolve_signal(name: str) -> signals.Signals:
    """Map 'SIGTERM', 'TERM' or '15' to a signal."""
    value = str(name).strip().upper()
    if value.isdigit():
        try:
            return signals.Signals(int(value))
        except ValueError:
            raise ToolError(f"Unknown signal: {name}")
    if not value.startswith("SIG"):
        value = "SIG" + value
    try:
        return signals.Signals[value]
    except KeyError:
        raise ToolError(f"Unknown signal: {name}")


# ---------------------------------------------------------------------------
# Tool 1: execute_command
# ---------------------------------------------------------------------------

@mcp.tool()
def execute_command(
    command: str,
    args: list[str] | None = None,
    workingDirectory: str | None = None,
) -> str:
    """Execute a shell command with security restrictions.

    Args:
        command: The command to execute (must be in allowed commands list)
        args: Command arguments
        workingDirectory: Working directory for the command (optional)
    """
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise ToolError(f"Could not parse command: {e}")
    if not argv:
        raise ToolError("command must not be empty")

    allowed = get_allowed_commands()
    if argv[0] not in allowed:
        raise ToolError(
            f"Command '{argv[0]}' is not in the allowed commands list: {', '.join(allowed)}"
        )

    argv += [str(a) for a in args or []]
    full_command = shlex.join(argv)
    cwd = workingDirectory or get_working_directory()
    timeout = get_timeout()

    log.info("Executing %s (cwd=%s)", full_command, cwd)
    try:
        proc = subprocess.run(argv, cwd=cwd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise ToolError(f"Command timed out after {timeout:g}s: {full_command}")
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        raise ToolError(f"Command failed to start: {e}")

    text = (
        f"Command: {full_command}\n"
        f"Working Directory: {cwd}\n\n"
        f"STDOUT:\n{proc.stdout}\n\n"
        f"STDERR:\n{proc.stderr}\n\n"
        f"Exit Code: {proc.returncode}"
    )
    if proc.returncode != 0:
        raise ToolError(f"Command failed with exit code {proc.returncode}\n{text}")
    return text


# ---------------------------------------------------------------------------
# Tool 2: list_processes
# ---------------------------------------------------------------------------

@mcp.tool()
def list_processes(filter: str | None = None) -> str:
    """List running processes.

    Args:
        filter: Optional filter for process names
    """
    needle = (filter or "").lower()
    lines = [f"{'PID':>7}  {'USER':<12} {'%CPU':>5} {'%MEM':>5}  COMMAND"]
    attrs = ["pid", "username", "cpu_percent", "memory_percent", "name", "cmdline"]
    for proc in psutil.process_iter(attrs):
        info = proc.info
        cmdline = " ".join(info.get("cmdline") or []) or (info.get("name") or "")
        if needle and needle not in cmdline.lower() and needle not in (info.get("name") or "").lower():
            continue
        lines.append(
            f"{info['pid']:>7}  {str(info.get('username') or '?')[:12]:<12} "
            f"{info.get('cpu_percent') or 0.0:>5.1f} {info.get('memory_percent') or 0.0:>5.1f}  {cmdline}"
        )

    header = f"Process List{f' (filtered by: {filter})' if filter else ''}:"
    return header + "\n\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Tool 3: kill_process
# ---------------------------------------------------------------------------

@mcp.tool()
def kill_process(pid: int, signal: str = "SIGTERM") -> str:
    """Kill a process by PID.

    Args:
        pid: Process ID to kill
        signal: Signal to send (default: SIGTERM)
    """
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise ToolError("Invalid PID: must be a positive number")
    sig = _resolve_signal(signal)

    try:
        psutil.Process(pid).send_signal(sig)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        raise ToolError(f"Process with PID {pid} does not exist or cannot be accessed")

    log.info("Sent %s to %d", sig.name, pid)
    return f"Successfully sent {sig.name} signal to process {pid}"


# ---------------------------------------------------------------------------
# Tool 4: get_environment
# ---------------------------------------------------------------------------

@mcp.tool()
def get_environment(variable: str | None = None) -> str:
    """Get environment variables and system information.

    Args:
        variable: Specific environment variable to get (optional)
    """
    if variable:
        return f"{variable}={os.environ.get(variable) or '(not set)'}"

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    info = {
        "Working Directory": get_working_directory(),
        "Allowed Commands": ", ".join(get_allowed_commands()),
        "Python Version": platform.python_version(),
        "Platform": platform.system().lower(),
        "Architecture": platform.machine(),
        "User": user,
        "Home Directory": os.path.expanduser("~"),
    }
    body = "\n".join(f"{key}: {value}" for key, value in info.items())
    return f"Environment Information:\n\n{body}"


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Shell minimal MCP server running")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
