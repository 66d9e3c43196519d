######## models.py
########

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class RunStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.DONE, RunStatus.FAILED)


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    DNS_ERROR = "DNS_ERROR"
    BLOCKED = "BLOCKED"
    UNKNOWN = "UNKNOWN"


SUCCESS = "SUCCESS"
ERROR = "ERROR"

SCREENSHOT_KEYS = (
    "desktop_viewport",
    "desktop_full_page",
    "mobile_viewport",
    "mobile_full_page",
)


def empty_screenshots() -> Dict[str, Optional[bytes]]:
    return {key: None for key in SCREENSHOT_KEYS}


@dataclass(frozen=True)
class DeviceProfile:
    name: str                   # "desktop" | "mobile"
    width: int
    height: int
    user_agent: str
    is_mobile: bool = False


# -----------------------------
# Capture boundary (tagged result)
# -----------------------------
@dataclass(frozen=True)
class ProfileCapture:
    profile: str
    resolved_url: str
    page_title: str
    status_code: int
    viewport_png: bytes
    full_page_png: bytes


@dataclass(frozen=True)
class CaptureFailure:
    code: ErrorCode
    message: str


CaptureOutcome = Union[ProfileCapture, CaptureFailure]


@dataclass(frozen=True)
class DomainResult:
    domain: str
    status: str                 # "SUCCESS" | "ERROR"
    target_url: str
    timestamp_local: str
    page_title: str
    http_fallback_used: bool
    resolved_url: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None
    screenshots: Dict[str, Optional[bytes]] = field(default_factory=empty_screenshots)

    def __post_init__(self) -> None:
        if self.status == SUCCESS:
            if not self.resolved_url or self.error_code is not None:
                raise ValueError("SUCCESS result requires a resolved_url and no error_code")
        elif self.status == ERROR:
            if self.error_code is None:
                raise ValueError("ERROR result requires an error_code")
        else:
            raise ValueError(f"Unknown result status: {self.status!r}")

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def to_record(self) -> Dict[str, Any]:
        """Reduced form without image bytes (status responses, analytics)."""
        return {
            "domain": self.domain,
            "status": self.status,
            "error_code": self.error_code.value if self.error_code else None,
            "target_url": self.target_url,
            "resolved_url": self.resolved_url,
            "http_fallback_used": self.http_fallback_used,
            "timestamp_local": self.timestamp_local,
            "page_title": self.page_title,
        }


@dataclass(frozen=True)
class Progress:
    processed: int
    total: int
    current_domain: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "total": self.total,
            "current_domain": self.current_domain,
        }


@dataclass(frozen=True)
class RunSummary:
    domains_total: int
    domains_success: int
    domains_failed: int
    pdf_status: str             # "success" | "fail"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domains_total": self.domains_total,
            "domains_success": self.domains_success,
            "domains_failed": self.domains_failed,
            "pdf_status": self.pdf_status,
        }


@dataclass
class Run:
    """
    One batch job over a user-submitted domain list.
    Mutated in place by the orchestrator; lives in memory only.
    """
    id: str
    user_id: str
    domains: List[str]
    input_count: int
    invalid_tokens: List[str]
    time_zone: str
    created_at: str
    status: RunStatus = RunStatus.QUEUED
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    progress: Optional[Progress] = None
    summary: Optional[RunSummary] = None
    domain_results: List[DomainResult] = field(default_factory=list)
    pdf_bytes: Optional[bytes] = None
    download_count: int = 0
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.progress is None:
            self.progress = Progress(processed=0, total=len(self.domains))

    @property
    def domains_count(self) -> int:
        return len(self.domains)

    @property
    def download_ready(self) -> bool:
        return self.status == RunStatus.DONE and self.pdf_bytes is not None

    def to_status(self) -> Dict[str, Any]:
        return {
            "run_id": self.id,
            "user_id": self.user_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "progress": self.progress.to_dict(),
            "input_count": self.input_count,
            "domains_count": self.domains_count,
            "domains": list(self.domains),
            "invalid_tokens": list(self.invalid_tokens),
            "time_zone": self.time_zone,
            "summary": self.summary.to_dict() if self.summary else None,
            "domain_results": [r.to_record() for r in self.domain_results],
            "error_message": self.error_message,
            "download_ready": self.download_ready,
            "download_count": self.download_count,
        }


@dataclass(frozen=True)
class ParsedDomains:
    unique_domains: List[str]
    invalid_tokens: List[str]
    input_count: int
