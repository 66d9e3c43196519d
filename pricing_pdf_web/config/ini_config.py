########## ini_config.py

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path

INI_DEFAULT_NAME = "pricing_pdf_web.ini"


@dataclass(frozen=True)
class CaptureSettings:
    navigation_timeout_ms: int = 9000
    page_operation_timeout_ms: int = 12000
    retry_delay_ms: int = 250
    block_probe_chars: int = 5000
    headless: bool = True


@dataclass(frozen=True)
class AppSettings:
    analytics_path: Path
    retention_days: int

    capture: CaptureSettings

    pacing_delay_ms: int
    run_ttl_minutes: int
    max_unique_domains: int

    log_level: str

    flask_host: str
    flask_port: int
    flask_debug: bool


class IniConfig:
    """
    Adapter around ConfigParser and filesystem resolution.
    Keeps INI handling out of the service code.
    """

    def __init__(self, ini_path: Path):
        self._ini_path = Path(ini_path)
        self._cfg = ConfigParser()
        read_ok = self._cfg.read(str(self._ini_path), encoding="utf-8-sig")
        if not read_ok:
            raise FileNotFoundError(f"INI file not found or unreadable: {self._ini_path}")

    @property
    def ini_path(self) -> Path:
        return self._ini_path

    @staticmethod
    def from_env_or_default() -> "IniConfig":
        ini_raw = (os.getenv("APP_INI") or "").strip()
        # If APP_INI is not set, default to repo-root-relative ini location
        ini_path = Path(ini_raw) if ini_raw else (Path(__file__).resolve().parents[2] / INI_DEFAULT_NAME)
        return IniConfig(ini_path)

    def _cfg_path(self, section: str, key: str) -> Path:
        """
        Reads a filesystem path from INI and resolves it.
        Tries [paths] and [path] interchangeably for convenience.
        Relative values are taken relative to the INI file's folder.
        """
        sections_to_try = [section]
        if section == "paths":
            sections_to_try.append("path")
        if section == "path":
            sections_to_try.append("paths")

        for sec in sections_to_try:
            if not self._cfg.has_section(sec):
                continue
            raw = (self._cfg.get(sec, key, fallback="") or "").strip()
            if raw:
                p = Path(os.path.expandvars(os.path.expanduser(raw)))
                if not p.is_absolute():
                    p = self._ini_path.resolve().parent / p
                return p.resolve()

        raise FileNotFoundError(f"Missing INI value for {key} in sections: {sections_to_try}")

    def load_settings(self) -> AppSettings:
        # Required paths
        analytics_path = self._cfg_path("paths", "analytics_path")

        # Capture pipeline
        capture = CaptureSettings(
            navigation_timeout_ms=max(1, self._cfg.getint("capture", "navigation_timeout_ms", fallback=9000)),
            page_operation_timeout_ms=max(1, self._cfg.getint("capture", "page_operation_timeout_ms", fallback=12000)),
            retry_delay_ms=max(0, self._cfg.getint("capture", "retry_delay_ms", fallback=250)),
            block_probe_chars=max(1, self._cfg.getint("capture", "block_probe_chars", fallback=5000)),
            headless=self._cfg.getboolean("capture", "headless", fallback=True),
        )

        # Runs
        pacing_delay_ms = max(0, self._cfg.getint("runs", "pacing_delay_ms", fallback=350))
        run_ttl_minutes = max(1, self._cfg.getint("runs", "run_ttl_minutes", fallback=20))
        max_unique_domains = max(1, self._cfg.getint("runs", "max_unique_domains", fallback=10))

        # Analytics
        retention_days = max(1, self._cfg.getint("analytics", "retention_days", fallback=90))

        log_level = (self._cfg.get("logging", "level", fallback="INFO") or "").strip().upper() or "INFO"

        # Flask
        flask_host = (self._cfg.get("flask", "host", fallback="127.0.0.1") or "").strip() or "127.0.0.1"
        flask_port = self._cfg.getint("flask", "port", fallback=3000)
        flask_debug = self._cfg.getboolean("flask", "debug", fallback=False)

        analytics_path.parent.mkdir(parents=True, exist_ok=True)

        return AppSettings(
            analytics_path=analytics_path,
            retention_days=retention_days,
            capture=capture,
            pacing_delay_ms=pacing_delay_ms,
            run_ttl_minutes=run_ttl_minutes,
            max_unique_domains=max_unique_domains,
            log_level=log_level,
            flask_host=flask_host,
            flask_port=flask_port,
            flask_debug=flask_debug,
        )
