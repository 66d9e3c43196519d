"""
Run lifecycle: QUEUED -> RUNNING -> DONE | FAILED.

Domains of one run are captured strictly one after another; several runs may
interleave on the same event loop. Capture failures become ERROR results and
never fail the run. Anything that escapes the sequence (browser launch,
report rendering, bugs) marks the run FAILED. Both terminal states append
exactly one analytics event and schedule eviction.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import (
    Any,
    AsyncContextManager,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
)

from pricing_pdf_web.domain.models import (
    ERROR,
    DomainResult,
    ErrorCode,
    Progress,
    Run,
    RunStatus,
    RunSummary,
    empty_screenshots,
)
from pricing_pdf_web.repositories.analytics_repository import AnalyticsLog
from pricing_pdf_web.repositories.run_repository import InMemoryRunStore
from pricing_pdf_web.services.capture_service import candidate_urls
from pricing_pdf_web.utils.clock import (
    format_local_timestamp,
    resolve_time_zone,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_PACING_DELAY_MS = 350


class DomainCapturer(Protocol):
    async def capture_domain(self, domain: str, time_zone: str) -> DomainResult: ...


class ReportRenderer(Protocol):
    def render(self, results: Sequence[DomainResult]) -> bytes: ...


BrowserLauncher = Callable[[], AsyncContextManager[Any]]
PipelineFactory = Callable[[Any], DomainCapturer]


class RunOrchestrator:
    def __init__(
        self,
        *,
        store: InMemoryRunStore,
        analytics: AnalyticsLog,
        launcher: BrowserLauncher,
        pipeline_factory: PipelineFactory,
        renderer: ReportRenderer,
        pacing_delay_ms: int = DEFAULT_PACING_DELAY_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._analytics = analytics
        self._launcher = launcher
        self._pipeline_factory = pipeline_factory
        self._renderer = renderer
        self._pacing_delay_ms = pacing_delay_ms
        self._sleep = sleep
        self._now = now
        self._tasks: Dict[str, asyncio.Task] = {}

    # -----------------------------
    # Public API (call on the event loop thread)
    # -----------------------------
    def create_run(
        self,
        user_id: str,
        domains: Sequence[str],
        input_count: int,
        invalid_tokens: Sequence[str],
        time_zone: Optional[str] = None,
    ) -> Run:
        loop = asyncio.get_running_loop()

        run = Run(
            id=str(uuid.uuid4()),
            user_id=user_id,
            domains=list(domains),
            input_count=input_count,
            invalid_tokens=list(invalid_tokens),
            time_zone=resolve_time_zone(time_zone),
            created_at=to_iso(self._now()),
        )
        self._store.add(run)

        run.status = RunStatus.RUNNING
        run.started_at = to_iso(self._now())
        logger.info("Run %s started user=%s domains=%d", run.id, user_id, run.domains_count)

        task = loop.create_task(self._execute(run), name=f"run-{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda _t, run_id=run.id: self._tasks.pop(run_id, None))
        return run

    def get_run(self, run_id: str) -> Optional[Run]:
        return self._store.get(run_id)

    def mark_downloaded(self, run_id: str) -> None:
        run = self._store.get(run_id)
        if run is None:
            return
        run.download_count += 1

    async def wait_for_run(self, run_id: str) -> Optional[Run]:
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return self._store.get(run_id)

    def shutdown(self) -> None:
        self._store.close()

    # -----------------------------
    # Execution
    # -----------------------------
    async def _execute(self, run: Run) -> None:
        started = time.monotonic()
        results: List[DomainResult] = []

        try:
            async with self._launcher() as browser:
                pipeline = self._pipeline_factory(browser)
                total = run.domains_count

                for index, domain in enumerate(run.domains):
                    run.progress = Progress(processed=index, total=total, current_domain=domain)
                    results.append(await pipeline.capture_domain(domain, run.time_zone))
                    await self._sleep(self._pacing_delay_ms / 1000)

                run.progress = Progress(processed=total, total=total, current_domain=None)

            # render in a worker thread; the loop keeps serving status calls
            loop = asyncio.get_running_loop()
            pdf_bytes = await loop.run_in_executor(None, self._renderer.render, results)
        except Exception as exc:
            logger.exception("Run %s failed", run.id)
            self._fail(run, results, exc)
        else:
            succeeded = sum(1 for r in results if r.ok)
            run.domain_results = results
            run.summary = RunSummary(
                domains_total=run.domains_count,
                domains_success=succeeded,
                domains_failed=run.domains_count - succeeded,
                pdf_status="success",
            )
            run.pdf_bytes = pdf_bytes
            run.status = RunStatus.DONE
            run.completed_at = to_iso(self._now())
            logger.info(
                "Run %s done success=%d failed=%d",
                run.id, run.summary.domains_success, run.summary.domains_failed,
            )
        finally:
            run.duration_ms = int((time.monotonic() - started) * 1000)

        self._finish(run)

    def _fail(self, run: Run, partial: List[DomainResult], exc: BaseException) -> None:
        message = str(exc) or exc.__class__.__name__
        captured = {r.domain: r for r in partial}
        timestamp = format_local_timestamp(self._now(), run.time_zone)

        results: List[DomainResult] = []
        for domain in run.domains:
            prior = captured.get(domain)
            if prior is not None and not prior.ok:
                results.append(prior)
                continue
            results.append(
                DomainResult(
                    domain=domain,
                    status=ERROR,
                    error_code=ErrorCode.UNKNOWN,
                    error_message=message,
                    target_url=candidate_urls(domain)[0],
                    resolved_url=None,
                    page_title=domain,
                    timestamp_local=timestamp,
                    http_fallback_used=False,
                    screenshots=empty_screenshots(),
                )
            )

        total = run.domains_count
        run.progress = Progress(processed=total, total=total, current_domain=None)
        run.domain_results = results
        run.summary = RunSummary(
            domains_total=total,
            domains_success=0,
            domains_failed=total,
            pdf_status="fail",
        )
        run.pdf_bytes = None
        run.error_message = message
        run.status = RunStatus.FAILED
        run.completed_at = to_iso(self._now())

    def _finish(self, run: Run) -> None:
        try:
            self._analytics.append_event(self._analytics_event(run))
        except Exception:
            logger.exception("Failed to append analytics event for run %s", run.id)
        self._store.schedule_eviction(run.id)

    def _analytics_event(self, run: Run) -> Dict[str, Any]:
        summary = run.summary
        return {
            "run_id": run.id,
            "user_id": run.user_id,
            "created_at": run.created_at,
            "started_at": run.started_at,
            "completed_at": run.completed_at,
            "time_zone": run.time_zone,
            "input_count": run.input_count,
            "domains_count": run.domains_count,
            "domains": list(run.domains),
            "invalid_tokens": list(run.invalid_tokens),
            "pdf_status": summary.pdf_status if summary else "fail",
            "domains_success": summary.domains_success if summary else 0,
            "domains_failed": summary.domains_failed if summary else run.domains_count,
            "duration_ms": run.duration_ms,
            "domain_results": [r.to_record() for r in run.domain_results],
            "retention_days": self._analytics.retention_days,
        }
