"""
Capture pipeline: visits https then http `/pricing` for one domain, renders
it under a desktop and a mobile profile, and returns a DomainResult.

Capture failures are data (CaptureFailure), never exceptions; only task
cancellation escapes `capture_domain`.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, List, Optional, Union

from playwright.async_api import Browser
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricing_pdf_web.config.ini_config import CaptureSettings
from pricing_pdf_web.domain.models import (
    ERROR,
    SUCCESS,
    CaptureFailure,
    CaptureOutcome,
    DeviceProfile,
    DomainResult,
    ErrorCode,
    ProfileCapture,
    empty_screenshots,
)
from pricing_pdf_web.utils.clock import format_local_timestamp, utc_now

logger = logging.getLogger(__name__)

PRICING_PATH = "/pricing"
URL_SCHEMES = ("https", "http")

DESKTOP = DeviceProfile(
    name="desktop",
    width=1366,
    height=768,
    user_agent=(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    ),
)
MOBILE = DeviceProfile(
    name="mobile",
    width=390,
    height=844,
    user_agent=(
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
    ),
    is_mobile=True,
)
DEVICE_PROFILES = (DESKTOP, MOBILE)

BLOCKED_PATTERN = re.compile(
    r"(captcha|verify you are human|cloudflare|access denied|bot detection|blocked request)",
    flags=re.IGNORECASE,
)

_BODY_TEXT_JS = "(n) => (document.body ? document.body.innerText || '' : '').slice(0, n)"


def candidate_urls(domain: str) -> List[str]:
    return [f"{scheme}://{domain}{PRICING_PATH}" for scheme in URL_SCHEMES]


def classify_status(status: Optional[int]) -> Optional[CaptureFailure]:
    """Navigation outcome -> failure, or None when the page may be captured."""
    if status is None:
        return CaptureFailure(ErrorCode.UNKNOWN, "No response received for the page")
    if status == 404 or 400 <= status < 500:
        return CaptureFailure(ErrorCode.NOT_FOUND, f"HTTP {status}")
    if status >= 500:
        return CaptureFailure(ErrorCode.UNKNOWN, f"HTTP {status}")
    return None


def classify_exception(exc: BaseException) -> ErrorCode:
    if isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return ErrorCode.TIMEOUT

    text = str(exc).lower()
    if "timeout" in text:
        return ErrorCode.TIMEOUT
    if "err_name_not_resolved" in text or "dns" in text or "enotfound" in text:
        return ErrorCode.DNS_ERROR
    if (
        "access denied" in text
        or "forbidden" in text
        or "captcha" in text
        or re.search(r"\bbot\b", text)
    ):
        return ErrorCode.BLOCKED
    return ErrorCode.UNKNOWN


def looks_blocked(title: str, body_text: str) -> bool:
    return bool(BLOCKED_PATTERN.search(f"{title or ''}\n{body_text or ''}"))


class CapturePipeline:
    """
    Captures one domain at a time against an already-launched browser.
    Every profile capture gets its own browser context, closed on every path.
    """

    def __init__(
        self,
        browser: Browser,
        settings: Optional[CaptureSettings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._browser = browser
        self._settings = settings or CaptureSettings()
        self._sleep = sleep

    async def capture_domain(self, domain: str, time_zone: str) -> DomainResult:
        urls = candidate_urls(domain)
        failure = CaptureFailure(ErrorCode.UNKNOWN, "Unknown error")
        attempted_url = urls[0]

        for index, url in enumerate(urls):
            attempted_url = url
            outcome = await self._capture_candidate(url)

            if not isinstance(outcome, CaptureFailure):
                desktop, mobile = outcome
                return self._success(domain, url, index > 0, desktop, mobile, time_zone)

            failure = outcome
            logger.warning(
                "Capture failed domain=%s url=%s code=%s message=%s",
                domain, url, failure.code.value, failure.message,
            )
            if index < len(urls) - 1:
                await self._sleep(self._settings.retry_delay_ms / 1000)

        return DomainResult(
            domain=domain,
            status=ERROR,
            error_code=failure.code,
            error_message=failure.message,
            target_url=attempted_url,
            resolved_url=None,
            page_title=domain,
            timestamp_local=format_local_timestamp(utc_now(), time_zone),
            http_fallback_used=len(urls) > 1,
            screenshots=empty_screenshots(),
        )

    async def _capture_candidate(
        self, url: str
    ) -> Union[tuple[ProfileCapture, ProfileCapture], CaptureFailure]:
        captures: List[ProfileCapture] = []
        for profile in DEVICE_PROFILES:
            outcome = await self._capture_profile(url, profile)
            if isinstance(outcome, CaptureFailure):
                # both profiles must succeed for the same candidate
                return outcome
            captures.append(outcome)
        desktop, mobile = captures
        return desktop, mobile

    async def _capture_profile(
        self, url: str, profile: DeviceProfile
    ) -> CaptureOutcome:
        try:
            context = await self._browser.new_context(
                viewport={"width": profile.width, "height": profile.height},
                user_agent=profile.user_agent,
                device_scale_factor=1,
                is_mobile=profile.is_mobile,
                has_touch=profile.is_mobile,
            )
        except Exception as exc:
            return CaptureFailure(classify_exception(exc), str(exc))

        try:
            page = await context.new_page()
            page.set_default_navigation_timeout(self._settings.navigation_timeout_ms)
            page.set_default_timeout(self._settings.page_operation_timeout_ms)

            response = await page.goto(url, wait_until="domcontentloaded")
            status = response.status if response is not None else None
            failure = classify_status(status)
            if failure is not None:
                return failure

            title = await page.title()
            body_text = await page.evaluate(_BODY_TEXT_JS, self._settings.block_probe_chars)
            if looks_blocked(title, body_text or ""):
                return CaptureFailure(ErrorCode.BLOCKED, "Anti-bot or captcha signals detected")

            viewport_png = await page.screenshot(type="png", full_page=False)
            full_page_png = await page.screenshot(type="png", full_page=True)

            return ProfileCapture(
                profile=profile.name,
                resolved_url=page.url,
                page_title=await page.title(),
                status_code=status,
                viewport_png=viewport_png,
                full_page_png=full_page_png,
            )
        except Exception as exc:
            return CaptureFailure(classify_exception(exc), str(exc) or exc.__class__.__name__)
        finally:
            try:
                await context.close()
            except Exception:
                logger.warning("Failed to close browser context for %s", url, exc_info=True)

    @staticmethod
    def _success(
        domain: str,
        url: str,
        fallback_used: bool,
        desktop: ProfileCapture,
        mobile: ProfileCapture,
        time_zone: str,
    ) -> DomainResult:
        if desktop.resolved_url and mobile.resolved_url and desktop.resolved_url != mobile.resolved_url:
            logger.info(
                "Profiles resolved to different URLs domain=%s desktop=%s mobile=%s; keeping mobile",
                domain, desktop.resolved_url, mobile.resolved_url,
            )

        return DomainResult(
            domain=domain,
            status=SUCCESS,
            error_code=None,
            error_message=None,
            target_url=url,
            resolved_url=mobile.resolved_url or desktop.resolved_url or url,
            page_title=desktop.page_title or mobile.page_title or domain,
            timestamp_local=format_local_timestamp(utc_now(), time_zone),
            http_fallback_used=fallback_used,
            screenshots={
                "desktop_viewport": desktop.viewport_png,
                "desktop_full_page": desktop.full_page_png,
                "mobile_viewport": mobile.viewport_png,
                "mobile_full_page": mobile.full_page_png,
            },
        )
