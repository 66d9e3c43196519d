import re
from dataclasses import dataclass, field
from typing import List, Optional

from pricing_pdf_web.domain.errors import InvalidSubmissionError
from pricing_pdf_web.domain.models import ParsedDomains

MAX_UNIQUE_DOMAINS = 10
MAX_USER_ID_LENGTH = 128

_DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)(?!-)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$",
    flags=re.IGNORECASE,
)
_USER_ID_RE = re.compile(r"^[A-Za-z0-9._:@-]+$")


class DomainNormalizer:
    """Strategy interface."""
    def normalize(self, token: str) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class HostOnlyDomainNormalizer(DomainNormalizer):
    """Reduces 'HTTPS://Example.com:8080/path' to 'example.com'."""

    def normalize(self, token: str) -> str:
        s = (token or "").strip().lower()
        if not s:
            return ""

        s = re.sub(r"^https?://", "", s)
        s = re.sub(r"/.*$", "", s)
        s = re.sub(r":\d+$", "", s)
        return s


def is_valid_domain(domain: str) -> bool:
    if not domain or len(domain) > 253:
        return False
    return bool(_DOMAIN_RE.match(domain))


def sanitize_user_id(value) -> Optional[str]:
    user_id = str(value or "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        return None
    if not _USER_ID_RE.match(user_id):
        return None
    return user_id


@dataclass(frozen=True)
class DomainListParser:
    normalizer: DomainNormalizer = field(default_factory=HostOnlyDomainNormalizer)
    max_unique_domains: int = MAX_UNIQUE_DOMAINS

    def parse(self, raw: str) -> ParsedDomains:
        parts = str(raw or "").split(",")
        seen = set()
        unique_domains: List[str] = []
        invalid_tokens: List[str] = []

        for part in parts:
            normalized = self.normalizer.normalize(part)
            if not normalized:
                continue
            if not is_valid_domain(normalized):
                invalid_tokens.append(part.strip())
                continue
            if normalized in seen:
                continue
            seen.add(normalized)
            unique_domains.append(normalized)

        return ParsedDomains(
            unique_domains=unique_domains,
            invalid_tokens=invalid_tokens,
            input_count=sum(1 for p in parts if p.strip()),
        )

    def validate(self, parsed: ParsedDomains) -> None:
        count = len(parsed.unique_domains)
        if count == 0:
            raise InvalidSubmissionError(
                "No valid domains found. Enter comma-separated domains, e.g.: stripe.com, notion.so",
                invalid_tokens=parsed.invalid_tokens,
            )
        if count > self.max_unique_domains:
            raise InvalidSubmissionError(
                f"Too many unique domains: {count}. Maximum is {self.max_unique_domains}.",
                invalid_tokens=parsed.invalid_tokens,
            )
