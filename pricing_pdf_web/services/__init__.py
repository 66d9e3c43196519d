from .capture_service import CapturePipeline
from .domain_parsing import DomainListParser, DomainNormalizer, HostOnlyDomainNormalizer
from .run_orchestrator import RunOrchestrator
from .run_service import RunService

__all__ = [
    "CapturePipeline",
    "DomainListParser",
    "DomainNormalizer",
    "HostOnlyDomainNormalizer",
    "RunOrchestrator",
    "RunService",
]
