"""Ranked extraction of the system-under-test URL and login credentials.

Both are best-effort mining of loosely structured story text. Each is an
ordered list of named strategies run by one RankedResolver; the first
accepted candidate wins and every candidate is kept for diagnostics.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import (
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)
from urllib.parse import urlparse

from autoheal.config.settings import Settings, get_settings
from autoheal.core.types import (
    Credentials,
    Story,
    StoryTestCase,
    TargetCandidate,
    TargetResolution,
)

logger = logging.getLogger(__name__)

C = TypeVar("C")
T = TypeVar("T")

URL_PATTERN = re.compile(
    r"https?://[a-zA-Z0-9][-a-zA-Z0-9@:%._\\+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"[-a-zA-Z0-9()@:%_\\+.~#?&=/]*",
    re.IGNORECASE,
)
DOMAIN_PATTERN = re.compile(
    r"(?<![@\w.-])(?:https?://)?(?:[a-zA-Z0-9-]+\.)*[a-zA-Z0-9-]+"
    r"\.(?:com|org|net|io|co|edu|gov|ai|dev)\b[^\s)\]>,'\"]*",
    re.IGNORECASE,
)
GOTO_PATTERN = re.compile(r"page\.goto\(\s*['\"`]([^'\"`]+)['\"`]")
TRAILING_PUNCTUATION = re.compile(r"[)\]>,;:!?.'\"]+$")
CONCATENATED_WORDS = (
    re.compile(r"/I$"),
    re.compile(r"/So$"),
    re.compile(r"/and$"),
    re.compile(r"/that$"),
    re.compile(r"/to$"),
    re.compile(r"/[A-Z][a-z]+$"),
)

USERNAME_PATTERNS = (
    ("username", re.compile(r"username[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
    ("user", re.compile(r"\buser[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
    ("login", re.compile(r"\blogin[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
    ("email", re.compile(r"\bemail[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
)
PASSWORD_PATTERNS = (
    ("password", re.compile(r"password[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
    ("pass", re.compile(r"\bpass[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
    ("secret", re.compile(r"\bsecret[:\s]+['\"]?([^\s,'\"]+)", re.IGNORECASE)),
)


@dataclass
class RankedStrategy(Generic[C, T]):
    """One named way of proposing candidates from a context."""

    name: str
    extract: Callable[[C], Iterable[T]]


@dataclass
class Ranked(Generic[T]):
    """Outcome of a ranked resolution."""

    chosen: Optional[T] = None
    source: Optional[str] = None
    candidates: List[Tuple[str, T]] = field(default_factory=list)


class RankedResolver(Generic[C, T]):
    """Runs strategies in precedence order; first accepted candidate wins.

    Every strategy is evaluated so the full candidate list is available to
    callers, but precedence alone decides the chosen value.
    """

    def __init__(
        self,
        name: str,
        strategies: Sequence[RankedStrategy[C, T]],
        accept: Optional[Callable[[T], bool]] = None,
    ) -> None:
        self.name = name
        self.strategies = list(strategies)
        self.accept = accept or (lambda value: True)

    def resolve(self, context: C) -> Ranked[T]:
        ranked: Ranked[T] = Ranked()
        for strategy in self.strategies:
            for value in strategy.extract(context):
                if not self.accept(value):
                    logger.debug(
                        f"{self.name}: rejected candidate from {strategy.name}",
                        extra={"strategy": strategy.name},
                    )
                    continue
                ranked.candidates.append((strategy.name, value))
                if ranked.chosen is None:
                    ranked.chosen = value
                    ranked.source = strategy.name
        return ranked


def clean_url(url: str) -> str:
    """Strip punctuation and words glued onto a URL by surrounding prose."""
    if not url:
        return url
    cleaned = TRAILING_PUNCTUATION.sub("", url.strip())
    for pattern in CONCATENATED_WORDS:
        cleaned = pattern.sub("/", cleaned)
    return cleaned.rstrip("/")


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and "." in (parsed.hostname or "")


def extract_urls(text: Optional[str]) -> List[str]:
    """Explicit http(s) URLs in text, cleaned and validated."""
    if not text:
        return []
    cleaned = (clean_url(match) for match in URL_PATTERN.findall(text))
    return [url for url in cleaned if is_valid_url(url)]


def _is_subdomain(domain: str) -> bool:
    # Only bare apex domains get a www. prefix
    host = domain.split("/", 1)[0].split(":", 1)[0]
    return host.count(".") > 1


def extract_domains(text: Optional[str]) -> List[str]:
    """URLs and bare domains (``www.amazon.com``) normalized to https URLs."""
    if not text:
        return []
    urls: List[str] = []
    for match in DOMAIN_PATTERN.finditer(text):
        raw = TRAILING_PUNCTUATION.sub("", match.group(0))
        if raw.lower().startswith("http"):
            url = raw
        elif raw.lower().startswith("www.") or _is_subdomain(raw):
            url = f"https://{raw}"
        else:
            url = f"https://www.{raw}"
        url = clean_url(url)
        if is_valid_url(url):
            urls.append(url)
    return urls


def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def is_placeholder(url: str, placeholder: str) -> bool:
    return bool(url) and _host(url) == _host(placeholder)


@dataclass
class TargetContext:
    """Inputs to URL resolution."""

    story: Story
    artifact_text: Optional[str] = None
    test_cases: List[StoryTestCase] = field(default_factory=list)


def _from_extracted_urls(ctx: TargetContext) -> List[str]:
    urls = [clean_url(url) for url in ctx.story.extracted_urls]
    return [url for url in urls if is_valid_url(url)]


def _from_story_text(ctx: TargetContext) -> List[str]:
    story = ctx.story
    urls: List[str] = []
    urls.extend(extract_urls(story.title))
    urls.extend(extract_urls(story.description))
    urls.extend(extract_domains(story.title))
    urls.extend(extract_domains(story.description))
    for criterion in story.acceptance_criteria:
        urls.extend(extract_domains(criterion))
    return urls


def _test_case_text(test_cases: Iterable[StoryTestCase]) -> str:
    return "\n".join(
        " ".join([tc.title, tc.steps, tc.expected_result, tc.description])
        for tc in test_cases
    )


def _build_url_strategies(settings: Settings) -> List[RankedStrategy[TargetContext, str]]:
    def from_id_prefix(ctx: TargetContext) -> List[str]:
        prefix = (ctx.story.id or "").split("-", 1)[0].strip().upper()
        domain = settings.id_prefix_domains.get(prefix)
        return [domain] if domain else []

    def from_artifact(ctx: TargetContext) -> List[str]:
        if not ctx.artifact_text:
            return []
        urls = (clean_url(url) for url in GOTO_PATTERN.findall(ctx.artifact_text))
        return [url for url in urls if is_valid_url(url)]

    def from_test_cases(ctx: TargetContext) -> List[str]:
        return extract_domains(_test_case_text(ctx.test_cases))

    def from_brand_keywords(ctx: TargetContext) -> List[str]:
        text = f"{ctx.story.full_text} {_test_case_text(ctx.test_cases)}".lower()
        return [
            domain
            for keyword, domain in settings.brand_domains.items()
            if re.search(rf"\b{re.escape(keyword.lower())}\b", text)
        ]

    return [
        RankedStrategy("extracted_urls", _from_extracted_urls),
        RankedStrategy("story_text", _from_story_text),
        RankedStrategy("id_prefix", from_id_prefix),
        RankedStrategy("artifact_navigation", from_artifact),
        RankedStrategy("test_case_text", from_test_cases),
        RankedStrategy("brand_keyword", from_brand_keywords),
    ]


def resolve_target_url(
    story: Story,
    artifact_text: Optional[str] = None,
    test_cases: Optional[List[StoryTestCase]] = None,
    settings: Optional[Settings] = None,
) -> TargetResolution:
    """
    Pick the URL under test for a story.

    Precedence: explicit extracted URLs, story text, ID prefix convention,
    the artifact's ``page.goto`` call, test-case text, brand keywords. The
    placeholder domain is rejected by every strategy and only returned,
    with a warning, when nothing else is found.

    Returns:
        TargetResolution whose ``chosen`` is never empty
    """
    settings = settings or get_settings()
    placeholder = settings.placeholder_domain
    resolver: RankedResolver[TargetContext, str] = RankedResolver(
        "target_url",
        _build_url_strategies(settings),
        accept=lambda url: not is_placeholder(url, placeholder),
    )
    ranked = resolver.resolve(
        TargetContext(story=story, artifact_text=artifact_text, test_cases=test_cases or [])
    )
    candidates = [TargetCandidate(source=source, value=value) for source, value in ranked.candidates]

    if ranked.chosen is None:
        logger.warning(
            f"No target URL found for {story.id}; falling back to placeholder {placeholder}",
            extra={"story_id": story.id},
        )
        return TargetResolution(
            candidates=candidates,
            chosen=placeholder,
            chosen_source="placeholder",
            is_placeholder=True,
        )

    logger.info(
        f"Target URL for {story.id}: {ranked.chosen} (from {ranked.source})",
        extra={"story_id": story.id, "source": ranked.source},
    )
    return TargetResolution(
        candidates=candidates,
        chosen=ranked.chosen,
        chosen_source=ranked.source or "",
    )


def extract_best_url(story: Story) -> Optional[str]:
    """First explicit URL from extracted links, description, title or criteria."""
    for url in _from_extracted_urls(TargetContext(story=story)):
        return url
    for text in [story.description, story.title, *story.acceptance_criteria]:
        urls = extract_urls(text)
        if urls:
            return urls[0]
    return None


def _pattern_strategies(
    patterns: Sequence[Tuple[str, "re.Pattern[str]"]],
) -> List[RankedStrategy[str, str]]:
    def make(pattern: "re.Pattern[str]") -> Callable[[str], List[str]]:
        def extract(text: str) -> List[str]:
            match = pattern.search(text)
            return [match.group(1)] if match else []

        return extract

    return [RankedStrategy(name, make(pattern)) for name, pattern in patterns]


_username_resolver: RankedResolver[str, str] = RankedResolver(
    "username", _pattern_strategies(USERNAME_PATTERNS)
)
_password_resolver: RankedResolver[str, str] = RankedResolver(
    "password", _pattern_strategies(PASSWORD_PATTERNS)
)


def extract_credentials(story: Optional[Story]) -> Optional[Credentials]:
    """Find ``username: x`` / ``password: y`` pairs in story text."""
    if story is None:
        return None
    text = story.full_text
    username = _username_resolver.resolve(text).chosen
    password = _password_resolver.resolve(text).chosen
    if username and password:
        logger.info(f"Extracted credentials for: {username}")
        return Credentials(username=username, password=password)
    return None
