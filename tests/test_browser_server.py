import asyncio
import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError
from playwright.async_api import Error as PlaywrightError

import browser_server
from browser_server import BrowserSession

SCAN = [
    {"selector": "h1#title", "text": "Welcome", "foregroundColor": "rgb(0, 0, 0)",
     "backgroundColor": "rgb(255, 255, 255)", "fontSize": 32, "bold": True},
    {"selector": "p", "text": "Fine print", "foregroundColor": "rgb(170, 170, 170)",
     "backgroundColor": "rgb(255, 255, 255)", "fontSize": 12, "bold": False},
]


class FakePage:
    """Stands in for a Playwright page."""

    def __init__(self, scan=None, fail=False):
        self.url = "about:blank"
        self.scan = scan or []
        self.fail = fail
        self.clicked = []

    def _check(self):
        if self.fail:
            raise PlaywrightError("Target closed")

    async def goto(self, url, wait_until=None, timeout=None):
        self._check()
        self.url = url

    async def title(self):
        return "Example Domain"

    async def screenshot(self, full_page=False, type="png"):
        self._check()
        return b"\x89PNG full" if full_page else b"\x89PNG"

    async def evaluate(self, script, arg=None):
        self._check()
        if arg is not None:
            return f"text of {arg}"
        if "innerText" in script:
            return "Body text"
        return self.scan

    async def click(self, selector):
        self._check()
        self.clicked.append(selector)


@pytest.fixture
def page(monkeypatch):
    def install(**kwargs):
        fake = FakePage(**kwargs)
        started = BrowserSession()
        started.browser = object()
        started.page = fake
        monkeypatch.setattr(browser_server, "session", started)
        return fake

    return install


@pytest.mark.anyio
async def test_navigate(page):
    page()
    result = json.loads(await browser_server.navigate("https://example.com/"))
    assert result == {"url": "https://example.com/", "title": "Example Domain"}


@pytest.mark.anyio
async def test_navigate_failure(page):
    page(fail=True)
    with pytest.raises(ToolError, match="Navigation to https://example.com/ failed"):
        await browser_server.navigate("https://example.com/")


@pytest.mark.anyio
async def test_take_screenshot(page):
    page()
    image = await browser_server.take_screenshot(fullPage=True)
    assert image.data == b"\x89PNG full"


@pytest.mark.anyio
async def test_extract_text(page):
    page()
    assert await browser_server.extract_text() == "Body text"
    assert await browser_server.extract_text("main") == "Text from main: text of main"


@pytest.mark.anyio
async def test_click_element(page):
    fake = page()
    result = json.loads(await browser_server.click_element("button.submit"))
    assert result == {"action": "clicked", "selector": "button.submit"}
    assert fake.clicked == ["button.submit"]


@pytest.mark.anyio
async def test_click_element_failure(page):
    page(fail=True)
    with pytest.raises(ToolError, match="Click on #missing failed"):
        await browser_server.click_element("#missing")


@pytest.mark.anyio
async def test_check_page_contrast(page):
    fake = page(scan=SCAN)
    fake.url = "https://example.com/"
    report = json.loads(await browser_server.check_page_contrast())
    assert report["url"] == "https://example.com/"
    assert report["checkedElements"] == 2
    assert len(report["issues"]) == 1

    issue = report["issues"][0]
    assert issue["selector"] == "p"
    assert issue["location"] == "Element 2, Text Run 1"
    assert issue["text"] == "Fine print"
    assert report["summary"]["total"] == 1


@pytest.mark.anyio
async def test_check_page_contrast_unknown_standard(page):
    page(scan=SCAN)
    with pytest.raises(ToolError, match="Unknown WCAG standard"):
        await browser_server.check_page_contrast(standard="B")


def test_scan_to_elements():
    elements = browser_server.scan_to_elements(SCAN[:1])
    assert elements == [
        {
            "type": "paragraph",
            "selector": "h1#title",
            "elements": [
                {
                    "text": "Welcome",
                    "styles": {
                        "foregroundColor": "rgb(0, 0, 0)",
                        "backgroundColor": "rgb(255, 255, 255)",
                        "fontSize": 32,
                        "bold": True,
                    },
                }
            ],
        }
    ]


@pytest.mark.anyio
async def test_close_without_browser_is_noop():
    fresh = BrowserSession()
    await fresh.close()
    assert fresh.browser is None and fresh.page is None


class FakeChromium:
    def __init__(self):
        self.launches = 0
        self.pages = 0

    async def launch(self, headless=True, args=None):
        self.launches += 1
        await asyncio.sleep(0.01)
        return self

    async def new_page(self):
        self.pages += 1
        return FakePage()


@pytest.mark.anyio
async def test_concurrent_first_use_launches_once(monkeypatch):
    chromium = FakeChromium()

    class FakeDriver:
        def __init__(self):
            self.chromium = chromium

    class FakeStarter:
        async def start(self):
            await asyncio.sleep(0)
            return FakeDriver()

    monkeypatch.setattr(browser_server, "async_playwright", FakeStarter)
    fresh = BrowserSession()
    first, second = await asyncio.gather(fresh.get_page(), fresh.get_page())
    assert first is second
    assert chromium.launches == 1
    assert chromium.pages == 1
