# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "mcp>=1.2.0",
#     "playwright>=1.40",
# ]
# ///
"""
Browser MCP Server ("puppeteer-minimal").

Provides 5 tools driving one headless Chromium page via Playwright:
  1. navigate             - Open a URL and wait for the network to settle
  2. take_screenshot      - PNG of the viewport or the full page
  3. extract_text         - innerText of a selector or of the body
  4. click_element        - Click a CSS selector
  5. check_page_contrast  - WCAG contrast scan of the visible text on the page

The browser is started on first use and closed when the server shuts down.
BROWSER_HEADLESS=0 shows the window.
"""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP, Image
from mcp.server.fastmcp.exceptions import ToolError
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

import contrast_engine as engine

log = logging.getLogger("browser_server")

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
NAVIGATION_TIMEOUT_MS = 30000

# Collects visible text elements with their effective colours.
# Background falls back through ancestors to white when all are transparent.
_CONTRAST_SCAN_JS = """\
() => {
    const transparent = (c) => !c || c === 'transparent' || /rgba\\(\\s*\\d+,\\s*\\d+,\\s*\\d+,\\s*0\\s*\\)/.test(c);
    const effectiveBackground = (el) => {
        for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
            const bg = getComputedStyle(node).backgroundColor;
            if (!transparent(bg)) return bg;
        }
        return 'rgb(255, 255, 255)';
    };
    const out = [];
    for (const el of document.body.querySelectorAll('*')) {
        const own = Array.from(el.childNodes)
            .filter(n => n.nodeType === 3)
            .map(n => n.textContent)
            .join('')
            .trim();
        if (!own) continue;
        const style = getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden') continue;
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) continue;
        out.push({
            selector: el.tagName.toLowerCase() + (el.id ? '#' + el.id : ''),
            text: own,
            foregroundColor: style.color,
            backgroundColor: effectiveBackground(el),
            fontSize: parseFloat(style.fontSize) || 16,
            bold: (parseInt(style.fontWeight, 10) || 400) >= 700
        });
    }
    return out;
}
"""


class BrowserSession:
    """Lazily started Playwright browser with a single page."""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.page: Page | None = None
        self._lock = asyncio.Lock()

    async def get_page(self) -> Page:
        async with self._lock:
            if self.browser is None:
                self.playwright = await async_playwright().start()
                self.browser = await self.playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
                log.info("Chromium launched (headless=%s)", self.headless)
            if self.page is None:
                self.page = await self.browser.new_page()
            return self.page

    async def close(self):
        async with self._lock:
            if self.browser is not None:
                await self.browser.close()
            if self.playwright is not None:
                await self.playwright.stop()
            self.browser = None
            self.page = None
            self.playwright = None


session = BrowserSession(headless=os.environ.get("BROWSER_HEADLESS", "1") != "0")


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    try:
        yield
    finally:
        await session.close()
        log.info("Browser closed")


mcp = FastMCP(
    "puppeteer-minimal",
    instructions=(
        "Drives a single headless browser page. Call navigate(url) first; the "
        "other tools act on the page that is currently open."
    ),
    lifespan=lifespan,
)


def _fmt(obj) -> str:
    """Format result as indented JSON string."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def scan_to_elements(scan: list[dict]) -> list[dict]:
    """Turn page scan rows into engine paragraph elements."""
    return [
        {
            "type": "paragraph",
            "selector": row.get("selector"),
            "elements": [
                {
                    "text": row.get("text", ""),
                    "styles": {
                        "foregroundColor": row.get("foregroundColor"),
                        "backgroundColor": row.get("backgroundColor"),
                        "fontSize": row.get("fontSize"),
                        "bold": bool(row.get("bold")),
                    },
                }
            ],
        }
        for row in scan
    ]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool()
async def navigate(url: str) -> str:
    """Navigate the page to a URL.

    Args:
        url: URL to navigate to
    """
    page = await session.get_page()
    try:
        await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        return _fmt({"url": page.url, "title": await page.title()})
    except PlaywrightError as e:
        raise ToolError(f"Navigation to {url} failed: {e.message}")


@mcp.tool()
async def take_screenshot(fullPage: bool = False) -> Image:
    """Take a PNG screenshot of the current page.

    Args:
        fullPage: Take full page screenshot
    """
    page = await session.get_page()
    try:
        data = await page.screenshot(full_page=fullPage, type="png")
    except PlaywrightError as e:
        raise ToolError(f"Screenshot failed: {e.message}")
    return Image(data=data, format="png")


@mcp.tool()
async def extract_text(selector: str | None = None) -> str:
    """Extract visible text from the page.

    Args:
        selector: CSS selector to extract text from (default: body)
    """
    page = await session.get_page()
    try:
        if selector:
            text = await page.evaluate(
                "(sel) => { const el = document.querySelector(sel); return el ? el.innerText : ''; }",
                selector,
            )
            return f"Text from {selector}: {text}"
        return await page.evaluate("() => document.body.innerText")
    except PlaywrightError as e:
        raise ToolError(f"Text extraction failed: {e.message}")


@mcp.tool()
async def click_element(selector: str) -> str:
    """Click an element.

    Args:
        selector: CSS selector of element to click
    """
    page = await session.get_page()
    try:
        await page.click(selector)
    except PlaywrightError as e:
        raise ToolError(f"Click on {selector} failed: {e.message}")
    return _fmt({"action": "clicked", "selector": selector})


@mcp.tool()
async def check_page_contrast(standard: str = "AA", large_text_threshold: float = 18) -> str:
    """Check WCAG contrast of every visible text element on the current page.

    Args:
        standard: "AA" or "AAA"
        large_text_threshold: Font size in px from which text counts as large
    """
    page = await session.get_page()
    try:
        scan = await page.evaluate(_CONTRAST_SCAN_JS)
    except PlaywrightError as e:
        raise ToolError(f"Contrast scan failed: {e.message}")

    elements = scan_to_elements(scan)
    try:
        issues = engine.analyze_elements(elements, standard=standard, large_text_threshold=large_text_threshold)
    except ValueError as e:
        raise ToolError(str(e))
    for issue in issues:
        issue["selector"] = elements[issue["elementIndex"]].get("selector")

    return _fmt(
        {
            "url": page.url,
            "checkedElements": len(elements),
            "issues": issues,
            "summary": engine.summarize(issues),
        }
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server via stdio transport."""
    log.info("Puppeteer Minimal MCP Server running on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
