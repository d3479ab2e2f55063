"""
Interview Dispatch: Round Splitter
Turns the free-text "Scheduling method" cell into ordered round units.

Supported shapes (one per line, case-insensitive labels):
    Round1: https://calendly.com/a
    Round 2: https://cal.com/b
    R3: https://forms.gle/c
    R 4
    https://calendly.com/d        (bare link, round number inferred)
Text with no recognizable structure still yields a single "Round 1".
"""
import re
from typing import Optional
from urllib.parse import urlparse

from orchestrator.models import RoundUnit

_LABELED_WITH_LINK = re.compile(r"^(Round\s*\d+|R\s*\d+)\s*:\s*(.+)$", re.IGNORECASE)
_LABEL_ONLY = re.compile(r"^(Round\s*\d+|R\s*\d+)", re.IGNORECASE)
_URL_IN_TEXT = re.compile(r"(https?://\S+)", re.IGNORECASE)
_DIGITS = re.compile(r"(\d+)")


def split_rounds(scheduling_method: Optional[str]) -> list[RoundUnit]:
    """Split scheduling text into round units, deduplicated by normalized name.

    Never raises. Blank input gives an empty list; non-blank input gives at
    least one round.
    """
    if not scheduling_method or not scheduling_method.strip():
        return []

    rounds: list[RoundUnit] = []
    seen: set[str] = set()

    normalized = scheduling_method.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.strip() for line in normalized.split("\n")]

    for line in filter(None, lines):
        match = _LABELED_WITH_LINK.match(line)
        if match:
            name = normalize_round_name(match.group(1))
            if name not in seen:
                seen.add(name)
                rounds.append(RoundUnit(name, extract_url(match.group(2).strip())))
        elif line.lower().startswith("r"):
            # "round"/"r" label without a link; lines with no number contribute nothing
            label = _LABEL_ONLY.match(line)
            if label:
                name = normalize_round_name(label.group(1))
                if name not in seen:
                    seen.add(name)
                    rounds.append(RoundUnit(name, None))
        elif is_http_url(line):
            name = f"Round {len(rounds) + 1}"
            if name not in seen:
                seen.add(name)
                rounds.append(RoundUnit(name, line))

    if not rounds:
        rounds.append(RoundUnit("Round 1", extract_url(scheduling_method)))

    return rounds


def normalize_round_name(label: str) -> str:
    """'Round1', 'r 2', 'ROUND 03' -> 'Round 1', 'Round 2', 'Round 03'."""
    match = _DIGITS.search(label)
    if match:
        return f"Round {match.group(1)}"
    return label


def extract_url(text: Optional[str]) -> Optional[str]:
    """First http(s) URL in the text, up to the next whitespace."""
    if not text:
        return None

    match = _URL_IN_TEXT.search(text)
    if match:
        return match.group(1)

    if is_http_url(text):
        return text.strip()

    return None


def is_http_url(text: Optional[str]) -> bool:
    """True if the whole (trimmed) text is an absolute http/https URL."""
    if not text:
        return False
    candidate = text.strip()
    if any(ch.isspace() for ch in candidate):
        return False
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.netloc)
