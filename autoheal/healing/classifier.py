"""Classification of failed runner output into failure kinds.

``classify_failure`` is a pure function: the same text (and story analysis)
always yields the same FailureClassification.
"""

import re
from typing import List, Optional, Sequence, Tuple

from autoheal.core.types import FailureClassification, StoryAnalysis, StoryType
from autoheal.healing.output_parser import strip_ansi

SELECTOR_PATTERNS = (
    re.compile(r"Timeout.*waiting for (?:selector|locator)", re.IGNORECASE),
    re.compile(r"locator\(['\"]([^'\"]+)['\"]\).*not found", re.IGNORECASE),
    re.compile(r"waiting for (?:locator|getBy\w+)\(", re.IGNORECASE),
    re.compile(r"Timed out \d+ms waiting for expect\(locator\)", re.IGNORECASE),
)
TEXT_PATTERNS = (
    re.compile(r"expected.*to contain.*but received", re.IGNORECASE),
    re.compile(r"^\s*Expected (?:string|substring):", re.IGNORECASE),
    re.compile(r"to(?:Have|Contain)Text\(", re.IGNORECASE),
)
NAVIGATION_PATTERN = re.compile(
    r"(net::ERR_|page\.goto:|Navigation timeout|Timeout.*goto|navigating to \".*\", waiting until)",
    re.IGNORECASE,
)
STRICT_MODE_PATTERN = re.compile(
    r"strict mode violation.*resolved to (\d+) elements", re.IGNORECASE
)
CSS_PATTERN = re.compile(r"toHaveCSS|font-size|font-family", re.IGNORECASE)
URL_PATTERN = re.compile(r"toHaveURL|Expected URL|page\.url\(\)", re.IGNORECASE)
CONSENT_PATTERN = re.compile(
    r"cookie|consent|onetrust|gdpr|cookiebot|intercepts pointer events",
    re.IGNORECASE,
)
ELEMENTS_NOT_FOUND = "element(s) not found"
# Source excerpt lines: "  > 12 |   await ...", "     |   ^"
CODE_FRAME_LINE = re.compile(r"^\s*(?:>\s*)?\d*\s*\|")

FAILED_SELECTOR = re.compile(
    r"((?:locator|getBy\w+)\((['\"`]).+?\2(?:,\s*\{[^}]*\})?\))"
)


def _matches_any(patterns: Sequence[re.Pattern], line: str) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def classify_failure(
    raw_text: Optional[str],
    analysis: Optional[StoryAnalysis] = None,
) -> FailureClassification:
    """
    Label failure kinds in raw runner output.

    Each matching line is appended verbatim to its bucket; one line may
    land in several buckets. Output with no recognisable pattern yields an
    empty classification, which callers treat as an unclassified failure.

    Args:
        raw_text: Combined stdout/stderr of the failed run
        analysis: Story analysis, used only for the logic-error heuristic

    Returns:
        FailureClassification
    """
    text = strip_ansi(raw_text or "")
    classification = FailureClassification()

    for line in text.splitlines():
        if _matches_any(SELECTOR_PATTERNS, line):
            classification.selector_issues.append(line)
        if _matches_any(TEXT_PATTERNS, line):
            classification.text_mismatches.append(line)
        if STRICT_MODE_PATTERN.search(line):
            classification.strict_mode_violations.append(line)
        if CSS_PATTERN.search(line):
            classification.css_issues.append(line)
        if URL_PATTERN.search(line):
            classification.url_issues.append(line)

    # Multi-line error blocks put the marker on a line of its own
    if not classification.selector_issues and ELEMENTS_NOT_FOUND in text:
        classification.selector_issues.extend(
            line for line in text.splitlines() if ELEMENTS_NOT_FOUND in line
        )

    classification.navigation_timeout = bool(NAVIGATION_PATTERN.search(text))
    classification.consent_dialog_detected = any(
        CONSENT_PATTERN.search(line)
        for line in text.splitlines()
        if not CODE_FRAME_LINE.match(line)
    )
    classification.is_logic_error = is_logic_error(text, analysis)
    return classification


def is_logic_error(text: str, analysis: Optional[StoryAnalysis]) -> bool:
    """True when an ADD story's test asserted on the content being added.

    New content is not live yet, so a failure that names it is a wrong
    assertion rather than a broken selector. Only quoted target phrases
    from the story are recognised.
    """
    if analysis is None or analysis.story_type != StoryType.ADD:
        return False
    lowered = text.lower()
    return any(
        phrase.strip() and phrase.strip().lower() in lowered
        for phrase in analysis.target_texts
    )


def failed_selectors(classification: FailureClassification) -> List[str]:
    """Locator expressions named in selector and strict-mode failures."""
    seen: List[str] = []
    for line in classification.selector_issues + classification.strict_mode_violations:
        for match in FAILED_SELECTOR.finditer(line):
            selector = match.group(1)
            if selector not in seen:
                seen.append(selector)
    return seen


def summarize(classification: FailureClassification) -> str:
    """Human-readable summary for prompts and reports."""
    counts: List[Tuple[str, str]] = [
        ("Error type", classification.error_type),
        ("Selector issues", str(len(classification.selector_issues))),
        ("Text mismatches", str(len(classification.text_mismatches))),
        ("Navigation issues", "YES" if classification.navigation_timeout else "NO"),
        ("Strict mode violations", str(len(classification.strict_mode_violations))),
        ("CSS assertion failures", str(len(classification.css_issues))),
        ("URL assertion failures", str(len(classification.url_issues))),
        ("Consent dialog", "YES" if classification.consent_dialog_detected else "NO"),
        ("Logic error", "YES" if classification.is_logic_error else "NO"),
    ]
    return "\n".join(f"- {label}: {value}" for label, value in counts)
