from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from pricing_pdf_web.adapters.background_loop import BackgroundLoop
from pricing_pdf_web.domain.errors import InvalidSubmissionError, ReportNotReadyError, RunNotFoundError
from pricing_pdf_web.domain.models import Run, RunStatus
from pricing_pdf_web.services.domain_parsing import DomainListParser, sanitize_user_id
from pricing_pdf_web.services.run_orchestrator import RunOrchestrator
from pricing_pdf_web.utils.clock import utc_now

USER_ID_HINT = "Field user_id is required. Allowed characters: letters, digits, ., _, :, @, -"


@dataclass
class RunService:
    """
    Service layer: validates submissions and hands run operations to the
    orchestrator on its event loop thread. Keeps routes thin.
    """
    orchestrator: RunOrchestrator
    runner: BackgroundLoop
    parser: DomainListParser

    def submit(self, user_id_raw: Any, domains_raw: Any, time_zone: Any = None) -> Run:
        user_id = sanitize_user_id(user_id_raw)
        if not user_id:
            raise InvalidSubmissionError(USER_ID_HINT)

        parsed = self.parser.parse(domains_raw)
        self.parser.validate(parsed)

        return self.runner.call(
            self.orchestrator.create_run,
            user_id,
            parsed.unique_domains,
            parsed.input_count,
            parsed.invalid_tokens,
            str(time_zone or "").strip() or None,
        )

    def status(self, run_id: str) -> Dict[str, Any]:
        return self.runner.call(lambda: self._lookup(run_id).to_status())

    def _lookup(self, run_id: str) -> Run:
        run = self.orchestrator.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def download(self, run_id: str) -> Tuple[bytes, str]:
        """Returns (pdf_bytes, filename) and counts the download."""

        def _take() -> Tuple[bytes, str]:
            run = self._lookup(run_id)
            if run.status != RunStatus.DONE or run.pdf_bytes is None:
                raise ReportNotReadyError(run_id)
            self.orchestrator.mark_downloaded(run_id)
            return run.pdf_bytes, report_filename(run.id)

        return self.runner.call(_take)


def report_filename(run_id: str) -> str:
    stamp = utc_now().strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"
    return f"pricing-report-{run_id[:8]}-{stamp}.pdf"
