# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
# ]
# ///
"""
Contrast Checker MCP Server ("contrast-checker").

Provides 3 tools over contrast_engine:
  1. check_contrast             - Ratio and AA/AAA compliance for one colour pair
  2. suggest_accessible_colors  - Adjusted colours that reach a target ratio
  3. analyze_elements           - Issues and summary for extracted text runs

Colours may be hex (#abc, #aabbcc), rgb()/rgba(), hsl()/hsla() or a basic
named colour.
"""

import json
import logging

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

import contrast_engine as engine

log = logging.getLogger("contrast_server")

mcp = FastMCP(
    "contrast-checker",
    instructions=(
        "WCAG 2.1 colour contrast checks. check_contrast reports the ratio and "
        "compliance for one pair; analyze_elements takes text runs shaped like "
        '{"type": "paragraph", "elements": [{"text", "styles": {foregroundColor, '
        "backgroundColor, fontSize, bold}}]}."
    ),
)


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _parse(label: str, color: str) -> engine.RGB:
    rgb = engine.parse_color(color)
    if rgb is None:
        raise ToolError(f"Invalid {label} color: {color}")
    return rgb


def _standard(standard: str) -> str:
    value = (standard or "").upper()
    if value not in engine.WCAG_STANDARDS:
        raise ToolError(f"standard must be one of: {', '.join(engine.WCAG_STANDARDS)}")
    return value


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
def check_contrast(
    foreground: str,
    background: str,
    font_size: float = 16,
    bold: bool = False,
    standard: str = "AA",
) -> str:
    """Check the WCAG contrast ratio between two colours.

    Args:
        foreground: Text colour
        background: Background colour
        font_size: Font size in px
        bold: Whether the text is bold
        standard: "AA" or "AAA" (decides whether suggestions are returned)
    """
    standard = _standard(standard)
    fg = _parse("foreground", foreground)
    bg = _parse("background", background)

    ratio = engine.ratio_for(fg, bg)
    large = engine.is_large_text(font_size, bold)
    result = {
        "foreground": {"input": foreground, "rgb": engine.rgb_to_string(fg), "hex": engine.rgb_to_hex(fg)},
        "background": {"input": background, "rgb": engine.rgb_to_string(bg), "hex": engine.rgb_to_hex(bg)},
        "ratio": round(ratio, 2),
        "isLargeText": large,
        "AA": engine.check_compliance(ratio, "AA", large),
        "AAA": engine.check_compliance(ratio, "AAA", large),
    }
    verdict = result[standard]
    result["passed"] = verdict["passed"]
    if not verdict["passed"]:
        result["suggestions"] = engine.suggest_colors(foreground, background, verdict["required"])
    return _fmt(result)


@mcp.tool()
def suggest_accessible_colors(foreground: str, background: str, target_ratio: float = 4.5) -> str:
    """Suggest darker or lighter variants of either colour reaching a target ratio.

    Args:
        foreground: Text colour
        background: Background colour
        target_ratio: Minimum contrast ratio to reach (1-21)
    """
    if not 1 <= target_ratio <= 21:
        raise ToolError("target_ratio must be between 1 and 21")
    fg = _parse("foreground", foreground)
    bg = _parse("background", background)
    return _fmt(
        {
            "currentRatio": round(engine.ratio_for(fg, bg), 2),
            "targetRatio": target_ratio,
            "suggestions": engine.suggest_colors(foreground, background, target_ratio),
        }
    )


@mcp.tool()
def analyze_elements(elements: list[dict], standard: str = "AA", large_text_threshold: float = 18) -> str:
    """Find contrast issues in extracted paragraphs and tables.

    Args:
        elements: Paragraph/table elements with styled text runs
        standard: "AA" or "AAA"
        large_text_threshold: Font size in px from which text counts as large
    """
    standard = _standard(standard)
    issues = engine.analyze_elements(elements, standard=standard, large_text_threshold=large_text_threshold)
    log.debug("%d elements analyzed, %d issues", len(elements), len(issues))
    return _fmt({"issues": issues, "summary": engine.summarize(issues)})


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Contrast Checker MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
