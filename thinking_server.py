# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
# ]
# ///
"""
Sequential Thinking MCP Server ("sequential-thinking-minimal").

Provides 5 tools over an in-memory list of thinking steps:
  1. create_step        - Append a step
  2. get_steps          - Most recent steps
  3. analyze_problem    - Five-step breakdown of a problem statement
  4. generate_solution  - Structured solution outline from context + requirements
  5. clear_steps        - Forget all steps

Steps live for the lifetime of the server process.
"""

import json
import logging
import secrets
import time
from datetime import datetime, timezone

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

log = logging.getLogger("thinking_server")

ANALYSIS_STEPS = [
    "1. Understand the problem clearly",
    "2. Identify key components and constraints",
    "3. Generate potential solutions",
    "4. Evaluate and select the best approach",
    "5. Implement and test the solution",
]

SOLUTION_OUTLINE = """\
Based on the context and requirements, here's a structured approach:

Context: {context}

Requirements: {requirements}

Proposed Solution:
1. Analyze the current situation
2. Identify key constraints and opportunities
3. Develop a step-by-step implementation plan
4. Consider potential challenges and mitigation strategies
5. Create a timeline and success metrics

This approach ensures systematic problem-solving while maintaining flexibility for adjustments."""

mcp = FastMCP(
    "sequential-thinking-minimal",
    instructions=(
        "Keeps an ordered list of thinking steps. Record each step with "
        "create_step and read them back with get_steps."
    ),
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


class StepLog:
    """Ordered, append-only list of steps."""

    def __init__(self):
        self.steps: list[dict] = []

    def add(self, content: str, step_id: str | None = None) -> dict:
        step = {
            "id": step_id or f"step_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
            "content": content,
            "timestamp": _now(),
        }
        self.steps.append(step)
        return step

    def recent(self, limit: int = 10) -> list[dict]:
        if limit <= 0:
            return []
        return self.steps[-limit:]

    def clear(self) -> int:
        removed = len(self.steps)
        self.steps.clear()
        return removed


steps = StepLog()


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
def create_step(content: str, id: str | None = None) -> str:
    """Create a new thinking step in the sequential process.

    Args:
        content: Content of the thinking step
        id: Optional ID for the step
    """
    if not content or not content.strip():
        raise ToolError("content must not be empty")
    step = steps.add(content, id)
    log.debug("Step %s recorded", step["id"])
    return _fmt(step)


@mcp.tool()
def get_steps(limit: int = 10) -> str:
    """Retrieve recent thinking steps.

    Args:
        limit: Maximum number of steps to return
    """
    return _fmt(steps.recent(limit))


@mcp.tool()
def analyze_problem(problem: str) -> str:
    """Analyze a problem using structured thinking approach.

    Args:
        problem: Problem statement to analyze
    """
    return _fmt(
        {
            "problem": problem,
            "approach": "Breaking down the problem into manageable steps",
            "steps": list(ANALYSIS_STEPS),
            "timestamp": _now(),
        }
    )


@mcp.tool()
def generate_solution(context: str, requirements: list[str]) -> str:
    """Generate a structured solution based on context and requirements.

    Args:
        context: Context for the solution
        requirements: List of requirements for the solution
    """
    return _fmt(
        {
            "context": context,
            "requirements": requirements,
            "solution": SOLUTION_OUTLINE.format(context=context, requirements=", ".join(requirements)),
            "timestamp": _now(),
        }
    )


@mcp.tool()
def clear_steps() -> str:
    """Remove all recorded thinking steps."""
    return _fmt({"removed": steps.clear()})


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Sequential Thinking Minimal MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
