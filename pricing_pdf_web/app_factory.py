from __future__ import annotations

import atexit
import logging

from flask import Flask

from pricing_pdf_web.adapters.background_loop import BackgroundLoop
from pricing_pdf_web.adapters.playwright_browser import ChromiumLauncher
from pricing_pdf_web.config.ini_config import AppSettings, IniConfig
from pricing_pdf_web.renderers.pdf_renderer import PdfReportRenderer
from pricing_pdf_web.repositories.analytics_repository import AnalyticsLog
from pricing_pdf_web.repositories.run_repository import InMemoryRunStore
from pricing_pdf_web.services.capture_service import CapturePipeline
from pricing_pdf_web.services.domain_parsing import DomainListParser
from pricing_pdf_web.services.run_orchestrator import RunOrchestrator
from pricing_pdf_web.services.run_service import RunService
from pricing_pdf_web.web.routes import create_blueprint

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def build_orchestrator(settings: AppSettings, analytics: AnalyticsLog) -> RunOrchestrator:
    capture_settings = settings.capture
    return RunOrchestrator(
        store=InMemoryRunStore(ttl_seconds=settings.run_ttl_minutes * 60),
        analytics=analytics,
        launcher=ChromiumLauncher(headless=capture_settings.headless),
        pipeline_factory=lambda browser: CapturePipeline(browser, capture_settings),
        renderer=PdfReportRenderer(),
        pacing_delay_ms=settings.pacing_delay_ms,
    )


def create_app() -> Flask:
    ini = IniConfig.from_env_or_default()
    settings = ini.load_settings()
    configure_logging(settings.log_level)

    analytics = AnalyticsLog(settings.analytics_path, retention_days=settings.retention_days)
    orchestrator = build_orchestrator(settings, analytics)

    runner = BackgroundLoop().start()
    atexit.register(runner.stop)

    run_service = RunService(
        orchestrator=orchestrator,
        runner=runner,
        parser=DomainListParser(max_unique_domains=settings.max_unique_domains),
    )

    app = Flask(__name__)
    app.register_blueprint(create_blueprint(run_service, analytics))

    app.config["HOST"] = settings.flask_host
    app.config["PORT"] = settings.flask_port
    app.config["DEBUG"] = settings.flask_debug

    app.logger.info("Settings loaded from %s", ini.ini_path)
    return app
