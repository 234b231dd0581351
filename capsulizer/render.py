"""
Render collaborator: URL -> rendered markup + visible text.

``PlaywrightRenderer`` is a context manager; entering it creates the render
context (browser + browser context). Failing to do so is fatal for the job,
while a failure to render a single page raises ``RenderError``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
from trafilatura import extract
from w3lib.html import remove_tags, remove_tags_with_content

from .exceptions import RenderError, RenderSetupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedPage:
    url: str
    html: str
    visible_text: str
    final_url: Optional[str] = None


def visible_text(html: str) -> str:
    """Text fallback when the renderer gives none: trafilatura, then bare tag stripping."""
    if not html:
        return ""
    text = extract(html, include_links=False, include_images=False) or ""
    if not text.strip():
        stripped = remove_tags_with_content(html, which_ones=("script", "style", "noscript"))
        text = remove_tags(stripped)
    return " ".join(text.split())


class PlaywrightRenderer:

    def __init__(self, user_agent: str, settle_ms: int = 800, headless: bool = True):
        self.user_agent = user_agent
        self.settle_ms = settle_ms
        self.headless = headless
        self._pw = None
        self._browser = None
        self._context = None

    @classmethod
    def factory(cls, settings):
        return lambda: cls(user_agent=settings.get("USER_AGENT"))

    def __enter__(self):
        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=self.headless)
            self._context = self._browser.new_context(user_agent=self.user_agent)
        except PlaywrightError as e:
            self.close()
            raise RenderSetupError(f"cannot start browser: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        for obj in (self._context, self._browser):
            if obj is not None:
                try:
                    obj.close()
                except PlaywrightError as e:
                    logger.debug(f"[RENDER] close failed: {e}")
        if self._pw is not None:
            self._pw.stop()
        self._pw = self._browser = self._context = None

    def render(self, url: str, timeout_ms: int) -> RenderedPage:
        page = self._context.new_page()
        try:
            page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            page.wait_for_timeout(self.settle_ms)
            html = page.content()
            text = page.evaluate("() => document.body ? document.body.innerText : ''") or ""
            final_url = page.url
        except PlaywrightTimeoutError as e:
            raise RenderError(url, RenderError.TIMEOUT, str(e)) from e
        except PlaywrightError as e:
            raise RenderError(url, RenderError.NAVIGATION, str(e)) from e
        finally:
            page.close()

        if not text.strip():
            text = visible_text(html)
        return RenderedPage(url=url, html=html, visible_text=text, final_url=final_url)
