from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from playwright.async_api import Browser, async_playwright


@dataclass(frozen=True)
class ChromiumLauncher:
    """
    Launches one headless Chromium per run and closes it when the run ends.
    A launch failure propagates and fails the whole run.
    """
    headless: bool = True

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[Browser]:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.headless)
            try:
                yield browser
            finally:
                await browser.close()
