from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricing_pdf_web.config.ini_config import CaptureSettings
from pricing_pdf_web.domain.models import ERROR, SUCCESS, ErrorCode
from pricing_pdf_web.services.capture_service import (
    CapturePipeline,
    candidate_urls,
    classify_exception,
    classify_status,
    looks_blocked,
)

PNG = b"\x89PNG-fake"


# -----------------------------
# Test doubles
# -----------------------------
@dataclass
class Visit:
    """What a fake page does when navigated to a URL."""
    status: Optional[int] = 200
    title: str = "Pricing"
    body: str = "Plans and pricing"
    final_url: Optional[str] = None
    error: Optional[BaseException] = None
    responds: bool = True


class FakeResponse:
    def __init__(self, status: int):
        self.status = status


class FakePage:
    def __init__(self, behave: Callable[[str, bool], Visit], is_mobile: bool):
        self._behave = behave
        self._is_mobile = is_mobile
        self._visit: Optional[Visit] = None
        self.url = "about:blank"
        self.navigation_timeout = None
        self.default_timeout = None
        self.screenshots: List[bool] = []
        self.evaluate_args: List = []

    def set_default_navigation_timeout(self, ms):
        self.navigation_timeout = ms

    def set_default_timeout(self, ms):
        self.default_timeout = ms

    async def goto(self, url, wait_until=None):
        assert wait_until == "domcontentloaded"
        visit = self._behave(url, self._is_mobile)
        if visit.error is not None:
            raise visit.error
        self._visit = visit
        self.url = visit.final_url or url
        if not visit.responds:
            return None
        return FakeResponse(visit.status)

    async def title(self):
        return self._visit.title

    async def evaluate(self, _script, arg=None):
        self.evaluate_args.append(arg)
        return self._visit.body[:arg]

    async def screenshot(self, type="png", full_page=False):
        self.screenshots.append(full_page)
        return PNG + (b"-full" if full_page else b"-viewport")


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict):
        self._browser = browser
        self.options = options
        self.closed = False
        self.page: Optional[FakePage] = None

    async def new_page(self):
        self.page = FakePage(self._browser.behave, bool(self.options.get("is_mobile")))
        return self.page

    async def close(self):
        self.closed = True


@dataclass
class FakeBrowser:
    behave: Callable[[str, bool], Visit]
    contexts: List[FakeContext] = field(default_factory=list)

    async def new_context(self, **options):
        ctx = FakeContext(self, options)
        self.contexts.append(ctx)
        return ctx


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# -----------------------------
# Helpers
# -----------------------------
def capture(behave: Callable[[str, bool], Visit], domain: str = "example.com", settings=None):
    browser = FakeBrowser(behave)
    sleep = RecordingSleep()
    pipeline = CapturePipeline(browser, settings or CaptureSettings(), sleep=sleep)
    result = asyncio.run(pipeline.capture_domain(domain, "UTC"))
    return result, browser, sleep


def always(visit: Visit) -> Callable[[str, bool], Visit]:
    return lambda _url, _mobile: visit


# -----------------------------
# Classification
# -----------------------------
def test_candidate_urls_https_first():
    assert candidate_urls("stripe.com") == ["https://stripe.com/pricing", "http://stripe.com/pricing"]


@pytest.mark.parametrize(
    "status, code",
    [
        (200, None),
        (301, None),
        (404, ErrorCode.NOT_FOUND),
        (403, ErrorCode.NOT_FOUND),
        (410, ErrorCode.NOT_FOUND),
        (500, ErrorCode.UNKNOWN),
        (503, ErrorCode.UNKNOWN),
        (None, ErrorCode.UNKNOWN),
    ],
)
def test_classify_status(status, code):
    failure = classify_status(status)
    if code is None:
        assert failure is None
    else:
        assert failure.code == code


@pytest.mark.parametrize(
    "exc, code",
    [
        (PlaywrightTimeoutError("Timeout 9000ms exceeded."), ErrorCode.TIMEOUT),
        (asyncio.TimeoutError(), ErrorCode.TIMEOUT),
        (RuntimeError("navigation timeout"), ErrorCode.TIMEOUT),
        (RuntimeError("net::ERR_NAME_NOT_RESOLVED at https://x.test/pricing"), ErrorCode.DNS_ERROR),
        (RuntimeError("getaddrinfo ENOTFOUND x.test"), ErrorCode.DNS_ERROR),
        (RuntimeError("Access Denied"), ErrorCode.BLOCKED),
        (RuntimeError("403 Forbidden"), ErrorCode.BLOCKED),
        (RuntimeError("bot protection triggered"), ErrorCode.BLOCKED),
        (RuntimeError("robots everywhere"), ErrorCode.UNKNOWN),
        (RuntimeError("net::ERR_CONNECTION_REFUSED"), ErrorCode.UNKNOWN),
    ],
)
def test_classify_exception(exc, code):
    assert classify_exception(exc) == code


@pytest.mark.parametrize(
    "title, body, blocked",
    [
        ("Just a moment...", "Checking your browser. Cloudflare Ray ID", True),
        ("Verify you are human", "", True),
        ("Pricing", "Please complete the CAPTCHA", True),
        ("Pricing", "Starter $10/mo, Pro $30/mo", False),
    ],
)
def test_looks_blocked(title, body, blocked):
    assert looks_blocked(title, body) is blocked


# -----------------------------
# Pipeline
# -----------------------------
def test_success_on_https_captures_four_screenshots():
    result, browser, sleep = capture(always(Visit(title="Example Pricing")))

    assert result.status == SUCCESS
    assert result.error_code is None
    assert result.target_url == "https://example.com/pricing"
    assert result.resolved_url == "https://example.com/pricing"
    assert result.http_fallback_used is False
    assert result.page_title == "Example Pricing"
    assert result.timestamp_local.endswith("UTC")
    assert result.screenshots == {
        "desktop_viewport": PNG + b"-viewport",
        "desktop_full_page": PNG + b"-full",
        "mobile_viewport": PNG + b"-viewport",
        "mobile_full_page": PNG + b"-full",
    }
    assert sleep.calls == []

    # one context per profile, each closed
    assert len(browser.contexts) == 2
    assert all(ctx.closed for ctx in browser.contexts)
    desktop, mobile = (ctx.options for ctx in browser.contexts)
    assert desktop["viewport"] == {"width": 1366, "height": 768}
    assert mobile["viewport"] == {"width": 390, "height": 844}
    assert mobile["is_mobile"] is True
    assert "iPhone" in mobile["user_agent"]


def test_timeouts_applied_from_settings():
    settings = CaptureSettings(navigation_timeout_ms=1111, page_operation_timeout_ms=2222)
    _, browser, _ = capture(always(Visit()), settings=settings)

    page = browser.contexts[0].page
    assert page.navigation_timeout == 1111
    assert page.default_timeout == 2222


def test_404_on_both_schemes_is_not_found_with_fallback():
    result, browser, sleep = capture(always(Visit(status=404)), domain="example-404.test")

    assert result.status == ERROR
    assert result.error_code == ErrorCode.NOT_FOUND
    assert result.error_message == "HTTP 404"
    assert result.http_fallback_used is True
    assert result.target_url == "http://example-404.test/pricing"
    assert result.resolved_url is None
    assert result.page_title == "example-404.test"
    assert all(v is None for v in result.screenshots.values())
    # desktop fails first, so mobile is never tried for a failed candidate
    assert len(browser.contexts) == 2
    assert all(ctx.closed for ctx in browser.contexts)
    assert sleep.calls == [0.25]


def test_http_fallback_success():
    def behave(url, _mobile):
        if url.startswith("https://"):
            return Visit(error=RuntimeError("net::ERR_SSL_PROTOCOL_ERROR"))
        return Visit(title="Plain HTTP")

    result, _, sleep = capture(behave)

    assert result.status == SUCCESS
    assert result.target_url == "http://example.com/pricing"
    assert result.http_fallback_used is True
    assert sleep.calls == [0.25]


def test_mobile_failure_fails_candidate():
    def behave(url, mobile):
        if mobile and url.startswith("https://"):
            return Visit(status=500)
        return Visit()

    result, browser, _ = capture(behave)

    # https: desktop ok + mobile fails; http: desktop + mobile ok
    assert result.status == SUCCESS
    assert result.target_url == "http://example.com/pricing"
    assert len(browser.contexts) == 4


def test_blocked_page_detected():
    result, _, _ = capture(always(Visit(title="Attention Required!", body="Cloudflare security check")))

    assert result.status == ERROR
    assert result.error_code == ErrorCode.BLOCKED


def test_block_probe_limited_to_prefix():
    body = "x" * 100 + " captcha"
    result, browser, _ = capture(always(Visit(body=body)), settings=CaptureSettings(block_probe_chars=50))
    assert result.status == SUCCESS
    # the prefix is cut inside the page
    assert browser.contexts[0].page.evaluate_args == [50]


def test_timeout_exception_closes_contexts():
    result, browser, _ = capture(always(Visit(error=PlaywrightTimeoutError("Timeout 9000ms exceeded."))))

    assert result.error_code == ErrorCode.TIMEOUT
    assert "Timeout" in result.error_message
    assert browser.contexts and all(ctx.closed for ctx in browser.contexts)


def test_dns_failure():
    result, _, _ = capture(always(Visit(error=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))))
    assert result.error_code == ErrorCode.DNS_ERROR


def test_no_response_is_unknown():
    result, _, _ = capture(always(Visit(responds=False)))
    assert result.error_code == ErrorCode.UNKNOWN
    assert result.error_message == "No response received for the page"


def test_resolved_url_prefers_mobile_redirect():
    def behave(_url, mobile):
        if mobile:
            return Visit(final_url="https://m.example.com/pricing")
        return Visit(final_url="https://www.example.com/pricing")

    result, _, _ = capture(behave)
    assert result.resolved_url == "https://m.example.com/pricing"


def test_context_creation_failure_is_captured():
    class BrokenBrowser:
        async def new_context(self, **_options):
            raise RuntimeError("Target page, context or browser has been closed")

    pipeline = CapturePipeline(BrokenBrowser(), CaptureSettings(retry_delay_ms=0), sleep=RecordingSleep())
    result = asyncio.run(pipeline.capture_domain("example.com", "UTC"))

    assert result.status == ERROR
    assert result.error_code == ErrorCode.UNKNOWN
