from .background_loop import BackgroundLoop
from .playwright_browser import ChromiumLauncher

__all__ = [
    "BackgroundLoop",
    "ChromiumLauncher",
]
