from .ini_config import AppSettings, CaptureSettings, IniConfig

__all__ = [
    "AppSettings",
    "CaptureSettings",
    "IniConfig",
]
