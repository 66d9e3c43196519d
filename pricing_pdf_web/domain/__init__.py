from .errors import InvalidSubmissionError, ReportNotReadyError, RunNotFoundError
from .models import (
    CaptureFailure,
    DeviceProfile,
    DomainResult,
    ErrorCode,
    ParsedDomains,
    ProfileCapture,
    Progress,
    Run,
    RunStatus,
    RunSummary,
)

__all__ = [
    "CaptureFailure",
    "DeviceProfile",
    "DomainResult",
    "ErrorCode",
    "InvalidSubmissionError",
    "ParsedDomains",
    "ProfileCapture",
    "Progress",
    "ReportNotReadyError",
    "Run",
    "RunNotFoundError",
    "RunStatus",
    "RunSummary",
]
