"""
Live page inspection ahead of script generation.

Loads the target page in a headless browser and extracts the elements a
generated test can actually locate, so prompts carry real tags, ids and
labels instead of guessed ones.
"""

import asyncio
import os
import re
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright
from pydantic import BaseModel, ConfigDict, Field

from autoheal.config.settings import Settings, get_settings
from autoheal.core.types import Credentials
from autoheal.monitoring.logger import get_logger, log_performance_metric

CONSENT_BUTTON = re.compile(r"accept|agree|consent|got it|I agree", re.IGNORECASE)

USERNAME_SELECTORS = [
    "#user-name",
    "#username",
    '[name="user-name"]',
    '[name="username"]',
    'input[placeholder*="user" i]',
    'input[placeholder*="email" i]',
    'input[type="email"]',
    'input[type="text"]',
]
PASSWORD_SELECTORS = [
    "#password",
    '[name="password"]',
    'input[type="password"]',
    'input[placeholder*="pass" i]',
]
LOGIN_SELECTORS = [
    "#login-button",
    '[type="submit"]',
    'button:has-text("Login")',
    'button:has-text("Sign in")',
]

EXTRACT_PAGE_SCRIPT = """() => {
  const attr = (el, name) => el.getAttribute(name) || null;
  const testId = el => attr(el, 'data-test') || attr(el, 'data-testid') || attr(el, 'data-cy');
  const text = (el, n) => (el.textContent || el.value || '').trim().substring(0, n);
  const take = (sel, n) => Array.from(document.querySelectorAll(sel)).slice(0, n);

  const inputs = take('input, textarea, select', 30)
    .filter(el => el.type !== 'hidden')
    .map(el => ({
      tag: el.tagName.toLowerCase(), type: el.type || 'text', id: el.id || null,
      name: el.name || null, placeholder: el.placeholder || null,
      ariaLabel: attr(el, 'aria-label'), dataTestId: testId(el), label: null,
    }));
  document.querySelectorAll('label[for]').forEach(label => {
    const input = inputs.find(i => i.id === label.getAttribute('for'));
    if (input) input.label = label.textContent.trim().substring(0, 60);
  });

  const seen = new Set();
  const textElements = take('[class*="title"], [class*="header"], [class*="product"], [class*="item"], [class*="card"], [class*="name"], [class*="price"]', 200)
    .map(el => ({ tag: el.tagName.toLowerCase(), text: text(el, 80), dataTestId: testId(el) }))
    .filter(el => el.text.length > 1 && !seen.has(el.tag + el.text) && seen.add(el.tag + el.text))
    .slice(0, 25);

  return {
    title: document.title,
    url: window.location.href,
    headings: take('h1, h2, h3, h4, h5, h6', 15).map(el => ({
      tag: el.tagName.toLowerCase(), text: text(el, 100), id: el.id || null,
    })),
    buttons: take('button, [role="button"], input[type="submit"], input[type="button"]', 20).map(el => ({
      tag: el.tagName.toLowerCase(), text: text(el, 80), id: el.id || null,
      ariaLabel: attr(el, 'aria-label'), dataTestId: testId(el),
    })),
    links: take('a[href]', 20).map(el => ({
      text: text(el, 60), href: (attr(el, 'href') || '').substring(0, 100), ariaLabel: attr(el, 'aria-label'),
    })),
    inputs,
    images: take('img', 10).map(el => ({ alt: el.alt || null, src: (el.src || '').substring(0, 120), id: el.id || null })),
    forms: take('form', 10).map(el => ({
      id: el.id || null, name: attr(el, 'name'), method: el.method || null,
      fieldCount: el.querySelectorAll('input, textarea, select').length,
    })),
    textElements,
    landmarks: take('nav, main, header, footer, [role="navigation"], [role="main"], [role="banner"], [role="contentinfo"]', 10).map(el => ({
      tag: el.tagName.toLowerCase(), role: attr(el, 'role'), ariaLabel: attr(el, 'aria-label'), id: el.id || null,
    })),
  };
}"""


class PageInfo(BaseModel):
    """Elements extracted from one loaded page."""

    title: str = ""
    url: str = ""
    headings: List[Dict[str, Any]] = Field(default_factory=list)
    buttons: List[Dict[str, Any]] = Field(default_factory=list)
    links: List[Dict[str, Any]] = Field(default_factory=list)
    inputs: List[Dict[str, Any]] = Field(default_factory=list)
    images: List[Dict[str, Any]] = Field(default_factory=list)
    forms: List[Dict[str, Any]] = Field(default_factory=list)
    text_elements: List[Dict[str, Any]] = Field(default_factory=list, alias="textElements")
    landmarks: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class InspectionResult(BaseModel):
    success: bool
    page_info: Optional[PageInfo] = None
    post_login_info: Optional[PageInfo] = None
    summary: str = ""
    error: Optional[str] = None


def _describe(item: Dict[str, Any], *keys: str) -> str:
    parts = [f'{key}="{item[key]}"' for key in keys if item.get(key)]
    return f" [{', '.join(parts)}]" if parts else ""


def _page_lines(info: PageInfo) -> List[str]:
    lines = [f"Page Title: {info.title}", f"Current URL: {info.url}"]

    if info.headings:
        lines.append("\nHEADINGS (use these tags, NOT assumed ones):")
        for h in info.headings:
            lines.append(f"  <{h['tag']}>{h.get('text', '')}</{h['tag']}>{_describe(h, 'id')}")

    if info.buttons:
        lines.append("\nBUTTONS:")
        for b in info.buttons:
            lines.append(f"  \"{b.get('text', '')}\"{_describe(b, 'id', 'ariaLabel', 'dataTestId')}")

    if info.inputs:
        lines.append("\nINPUT FIELDS:")
        for i in info.inputs:
            lines.append(
                f"  <{i['tag']} type={i.get('type', 'text')}>"
                f"{_describe(i, 'id', 'name', 'placeholder', 'label', 'dataTestId')}"
            )

    if info.forms:
        lines.append(f"\nFORMS: {len(info.forms)}")

    if info.images:
        alts = [img["alt"] for img in info.images if img.get("alt")]
        lines.append(f"\nIMAGES: {len(info.images)}" + (f" (alt: {', '.join(alts[:5])})" if alts else ""))

    if info.links:
        lines.append("\nLINKS:")
        for link in info.links[:10]:
            lines.append(f"  \"{link.get('text', '')}\" -> {link.get('href', '')}")

    if info.text_elements:
        lines.append("\nTEXT ELEMENTS:")
        for el in info.text_elements[:15]:
            lines.append(f"  <{el['tag']}> {el.get('text', '')}{_describe(el, 'dataTestId')}")

    if info.landmarks:
        tags = sorted({lm.get("role") or lm["tag"] for lm in info.landmarks})
        lines.append(f"\nLANDMARKS: {', '.join(tags)}")

    return lines


def format_summary(info: PageInfo, post_login: Optional[PageInfo] = None) -> str:
    """Render inspected pages as a prompt block."""
    lines = ["=== PAGE INSPECTION RESULTS ===", *_page_lines(info)]
    if post_login:
        lines.append("\n=== AFTER LOGIN ===")
        lines.extend(_page_lines(post_login))
    lines.append("\n=== END PAGE INSPECTION ===")
    return "\n".join(lines)


def degraded_summary(error: str) -> str:
    return f"[Page inspection failed: {error}. Generate tests using best-practice selectors.]"


class PageInspector:
    """Headless inspection of a target page."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.timeout = self.settings.page_inspection_timeout_ms
        self.logger = get_logger("browser.inspector")

    async def inspect(self, url: str, credentials: Optional[Credentials] = None) -> InspectionResult:
        """
        Inspect a page, optionally logging in first.

        Args:
            url: Page to load
            credentials: Login pair; the post-login page is inspected too

        Returns:
            InspectionResult; a failed inspection carries a degraded
            summary instead of raising
        """
        start_time = asyncio.get_event_loop().time()
        self.logger.info("Inspecting page", extra={"url": url})

        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=self.settings.browser_headless,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                    env=os.environ,
                )
                try:
                    context = await browser.new_context(
                        viewport={"width": 1280, "height": 720},
                        ignore_https_errors=True,
                    )
                    page = await context.new_page()
                    await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout)
                    await self._dismiss_consent(page)
                    await page.wait_for_timeout(1500)

                    page_info = PageInfo.model_validate(await page.evaluate(EXTRACT_PAGE_SCRIPT))

                    post_login = None
                    if credentials:
                        post_login = await self._login_and_extract(page, credentials)
                finally:
                    await browser.close()
        except PlaywrightError as e:
            self.logger.warning(f"Page inspection failed: {e.message}", extra={"url": url})
            return InspectionResult(success=False, error=e.message, summary=degraded_summary(e.message))

        elapsed_ms = (asyncio.get_event_loop().time() - start_time) * 1000
        log_performance_metric("page_inspection", elapsed_ms, context={"url": url})
        self.logger.info(
            "Page inspected",
            extra={
                "url": url,
                "headings": len(page_info.headings),
                "buttons": len(page_info.buttons),
                "inputs": len(page_info.inputs),
            },
        )

        return InspectionResult(
            success=True,
            page_info=page_info,
            post_login_info=post_login,
            summary=format_summary(page_info, post_login),
        )

    async def _dismiss_consent(self, page: Page) -> None:
        button = page.get_by_role("button", name=CONSENT_BUTTON).first
        try:
            await button.click(timeout=3000)
            await page.wait_for_timeout(1000)
        except PlaywrightError:
            self.logger.debug("No consent dialog")

    async def _use_first_visible(self, page: Page, selectors: List[str], value: Optional[str] = None) -> bool:
        for selector in selectors:
            locator = page.locator(selector).first
            try:
                if not await locator.is_visible(timeout=1000):
                    continue
                if value is None:
                    await locator.click()
                else:
                    await locator.fill(value)
                return True
            except PlaywrightError:
                continue
        return False

    async def _login_and_extract(self, page: Page, credentials: Credentials) -> Optional[PageInfo]:
        try:
            await self._use_first_visible(page, USERNAME_SELECTORS, credentials.username)
            await self._use_first_visible(page, PASSWORD_SELECTORS, credentials.password)
            await self._use_first_visible(page, LOGIN_SELECTORS)
            await page.wait_for_load_state("domcontentloaded", timeout=10000)
            await page.wait_for_timeout(2000)
            return PageInfo.model_validate(await page.evaluate(EXTRACT_PAGE_SCRIPT))
        except PlaywrightError as e:
            self.logger.warning(f"Login inspection failed: {e.message}")
            return None
