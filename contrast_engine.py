"""
WCAG Contrast Engine.

Pure functions for WCAG 2.1 contrast checks:
- Colour parsing (hex, rgb/rgba, hsl/hsla, named colours)
- Relative luminance and contrast ratio
- AA/AAA compliance with large-text handling
- Colour suggestions that reach a target ratio
- Issue extraction from document text runs (Docs/Slides/page scans)
"""

import re
from typing import NamedTuple


class RGB(NamedTuple):
    r: int
    g: int
    b: int


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WCAG_STANDARDS = {
    "AA": {"normal": 4.5, "large": 3.0},
    "AAA": {"normal": 7.0, "large": 4.5},
}

DEFAULT_FONT_SIZE = 16
DEFAULT_LARGE_TEXT_THRESHOLD = 18
MAX_SUGGESTIONS = 6
WARNING_MARGIN = 0.8

NAMED_COLORS = {
    "black": RGB(0, 0, 0),
    "white": RGB(255, 255, 255),
    "red": RGB(255, 0, 0),
    "green": RGB(0, 128, 0),
    "blue": RGB(0, 0, 255),
    "yellow": RGB(255, 255, 0),
    "cyan": RGB(0, 255, 255),
    "magenta": RGB(255, 0, 255),
    "silver": RGB(192, 192, 192),
    "gray": RGB(128, 128, 128),
    "maroon": RGB(128, 0, 0),
    "olive": RGB(128, 128, 0),
    "lime": RGB(0, 255, 0),
    "aqua": RGB(0, 255, 255),
    "teal": RGB(0, 128, 128),
    "navy": RGB(0, 0, 128),
    "fuchsia": RGB(255, 0, 255),
    "purple": RGB(128, 0, 128),
}

# (label, channel factor) tried in order for each side of the pair
ADJUSTMENTS = [
    ("Darker", 0.7),
    ("Much Darker", 0.5),
    ("Lighter", 1.3),
    ("Much Lighter", 1.6),
]

_RGB_RE = re.compile(r"rgba?\((\d+),\s*(\d+),\s*(\d+)(?:,\s*[\d.]+)?\)")
_HSL_RE = re.compile(r"hsla?\((\d+),\s*(\d+)%,\s*(\d+)%(?:,\s*[\d.]+)?\)")


# ---------------------------------------------------------------------------
# Colour parsing
# ---------------------------------------------------------------------------

def parse_color(color: str | None) -> RGB | None:
    """Parse a CSS-style colour string. Returns None when unrecognised."""
    if not color:
        return None
    color = color.strip().lower()

    if color.startswith("#"):
        return _parse_hex(color)
    if color.startswith("rgb"):
        return _parse_rgb(color)
    if color.startswith("hsl"):
        return _parse_hsl(color)
    return NAMED_COLORS.get(color)


def _parse_hex(value: str) -> RGB | None:
    digits = value.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    if len(digits) != 6:
        return None
    try:
        return RGB(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))
    except ValueError:
        return None


def _parse_rgb(value: str) -> RGB | None:
    match = _RGB_RE.fullmatch(value)
    if not match:
        return None
    r, g, b = (int(part) for part in match.groups())
    if max(r, g, b) > 255:
        return None
    return RGB(r, g, b)


def _parse_hsl(value: str) -> RGB | None:
    match = _HSL_RE.fullmatch(value)
    if not match:
        return None
    h, s, l = (int(part) for part in match.groups())
    return hsl_to_rgb(h / 360, s / 100, l / 100)


def hsl_to_rgb(h: float, s: float, l: float) -> RGB:
    """Convert HSL (all components 0..1) to an RGB triple."""
    if s == 0:
        r = g = b = l
    else:
        q = l * (1 + s) if l < 0.5 else l + s - l * s
        p = 2 * l - q
        r = _hue_to_channel(p, q, h + 1 / 3)
        g = _hue_to_channel(p, q, h)
        b = _hue_to_channel(p, q, h - 1 / 3)
    return RGB(round(r * 255), round(g * 255), round(b * 255))


def _hue_to_channel(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def rgb_to_string(rgb: RGB) -> str:
    return f"rgb({rgb.r}, {rgb.g}, {rgb.b})"


def rgb_to_hex(rgb: RGB) -> str:
    return f"#{rgb.r:02x}{rgb.g:02x}{rgb.b:02x}"


# ---------------------------------------------------------------------------
# Luminance / ratio / compliance
# ---------------------------------------------------------------------------

def _linearize(channel: int) -> float:
    c = channel / 255
    return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4


def relative_luminance(rgb: RGB) -> float:
    """Relative luminance (0..1) of an sRGB colour."""
    return (
        0.2126 * _linearize(rgb.r)
        + 0.7152 * _linearize(rgb.g)
        + 0.0722 * _linearize(rgb.b)
    )


def contrast_ratio(color1: str, color2: str) -> float:
    """Contrast ratio (1..21) between two colour strings.

    Returns 0.0 if either colour cannot be parsed, so callers can
    distinguish "unknown" from a real (>= 1) ratio.
    """
    rgb1 = parse_color(color1)
    rgb2 = parse_color(color2)
    if rgb1 is None or rgb2 is None:
        return 0.0
    return ratio_for(rgb1, rgb2)


def ratio_for(rgb1: RGB, rgb2: RGB) -> float:
    lum1 = relative_luminance(rgb1)
    lum2 = relative_luminance(rgb2)
    lighter, darker = max(lum1, lum2), min(lum1, lum2)
    return (lighter + 0.05) / (darker + 0.05)


def required_ratio(standard: str = "AA", large_text: bool = False) -> float:
    try:
        levels = WCAG_STANDARDS[standard.upper()]
    except KeyError:
        raise ValueError(f"Unknown WCAG standard '{standard}'. Use one of: {sorted(WCAG_STANDARDS)}")
    return levels["large" if large_text else "normal"]


def check_compliance(ratio: float, standard: str = "AA", large_text: bool = False) -> dict:
    """Compare a ratio with the WCAG requirement.

    ``level`` is "warning" when the ratio misses the requirement by
    less than 20%.
    """
    required = required_ratio(standard, large_text)
    passed = ratio >= required
    if passed:
        level = "pass"
    elif ratio >= required * WARNING_MARGIN:
        level = "warning"
    else:
        level = "fail"
    return {
        "passed": passed,
        "required": required,
        "actual": ratio,
        "standard": standard.upper(),
        "isLargeText": large_text,
        "level": level,
    }


def is_large_text(font_size: float, bold: bool = False, threshold: float = DEFAULT_LARGE_TEXT_THRESHOLD) -> bool:
    """Large text is >= threshold px, or bold and >= threshold - 4 px."""
    if font_size >= threshold:
        return True
    return bool(bold) and font_size >= threshold - 4


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

def _scale(rgb: RGB, factor: float) -> RGB:
    return RGB(*(min(255, max(0, round(ch * factor))) for ch in rgb))


def _adjust_for_contrast(color: RGB, other: RGB, target_ratio: float, side: str) -> list[dict]:
    suggestions = []
    for label, factor in ADJUSTMENTS:
        adjusted = _scale(color, factor)
        ratio = ratio_for(adjusted, other)
        if ratio >= target_ratio:
            suggestions.append(
                {
                    "color": rgb_to_string(adjusted),
                    "hex": rgb_to_hex(adjusted),
                    "ratio": ratio,
                    "name": f"{label} {side}",
                    "type": side,
                }
            )
    return suggestions


def suggest_colors(foreground: str, background: str, target_ratio: float) -> list[dict]:
    """Suggest darker/lighter variants of either colour that reach target_ratio."""
    fg = parse_color(foreground)
    bg = parse_color(background)
    if fg is None or bg is None:
        return []

    suggestions = _adjust_for_contrast(fg, bg, target_ratio, "foreground")
    suggestions += _adjust_for_contrast(bg, fg, target_ratio, "background")
    return suggestions[:MAX_SUGGESTIONS]


# ---------------------------------------------------------------------------
# Element analysis
# ---------------------------------------------------------------------------

def _truncate(text: str, limit: int = 100) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def analyze_text_run(
    run: dict,
    standard: str = "AA",
    large_text_threshold: float = DEFAULT_LARGE_TEXT_THRESHOLD,
    location: str = "",
    element_index: int = 0,
    run_index: int = 0,
) -> dict | None:
    """Return an issue dict for a failing text run, else None."""
    styles = run.get("styles") or {}
    text = run.get("text") or ""
    foreground = styles.get("foregroundColor")
    background = styles.get("backgroundColor")
    if not foreground or not background:
        return None

    ratio = contrast_ratio(foreground, background)
    if ratio == 0:
        return None

    font_size = styles.get("fontSize") or DEFAULT_FONT_SIZE
    bold = bool(styles.get("bold", False))
    large = is_large_text(font_size, bold, large_text_threshold)
    compliance = check_compliance(ratio, standard, large)
    if compliance["passed"]:
        return None

    return {
        "type": "contrast_ratio",
        "severity": compliance["level"],
        "location": location,
        "text": _truncate(text),
        "foreground": foreground,
        "background": background,
        "ratio": ratio,
        "required": compliance["required"],
        "isLargeText": large,
        "fontSize": font_size,
        "isBold": bold,
        "elementIndex": element_index,
        "runIndex": run_index,
        "suggestions": suggest_colors(foreground, background, compliance["required"]),
    }


def analyze_elements(
    elements: list[dict],
    standard: str = "AA",
    large_text_threshold: float = DEFAULT_LARGE_TEXT_THRESHOLD,
) -> list[dict]:
    """Collect contrast issues from extracted document elements.

    Elements are ``{"type": "paragraph", "elements": [run, ...]}`` or
    ``{"type": "table", "rows": [[[paragraph, ...], ...], ...]}``.
    A run is ``{"text": str, "styles": {...}}``.
    """
    required_ratio(standard)  # fail fast on unknown standards
    issues = []
    for index, element in enumerate(elements):
        kind = element.get("type")
        if kind == "paragraph":
            issues += _analyze_runs(
                element.get("elements") or [],
                standard,
                large_text_threshold,
                f"Element {index + 1}",
                index,
            )
        elif kind == "table":
            for r, row in enumerate(element.get("rows") or []):
                for c, cell in enumerate(row):
                    for paragraph in cell:
                        if paragraph.get("type") != "paragraph":
                            continue
                        issues += _analyze_runs(
                            paragraph.get("elements") or [],
                            standard,
                            large_text_threshold,
                            f"Element {index + 1}, Row {r + 1}, Cell {c + 1}",
                            index,
                        )
    return issues


def _analyze_runs(runs, standard, threshold, prefix, element_index) -> list[dict]:
    issues = []
    for run_index, run in enumerate(runs):
        if not run or not (run.get("text") or "").strip() or not run.get("styles"):
            continue
        issue = analyze_text_run(
            run,
            standard=standard,
            large_text_threshold=threshold,
            location=f"{prefix}, Text Run {run_index + 1}",
            element_index=element_index,
            run_index=run_index,
        )
        if issue:
            issues.append(issue)
    return issues


def summarize(issues: list[dict]) -> dict:
    """Summary counts over a list of issues."""
    total = len(issues)
    failed = sum(1 for issue in issues if issue.get("severity") == "fail")
    warnings = sum(1 for issue in issues if issue.get("severity") == "warning")
    passed = total - failed - warnings
    return {
        "total": total,
        "failed": failed,
        "warnings": warnings,
        "passed": passed,
        "passRate": round(passed / total * 100, 1) if total else 100.0,
    }
