"""
Transcript Extraction.

Pulls denial reasons and next steps out of a call transcript. Pure and
deterministic: the same turns always produce the same ``ExtractedData``.

Extraction runs in three passes, each only when the previous one found
nothing:

1. Representative turns containing a denial keyword. A denial template
   inside the turn narrows it to the captured reason; otherwise the whole
   turn is taken unless it is an instruction or a question.
2. Denial templates over the full transcript text.
3. Sentences of representative turns mentioning a denial keyword.

Each candidate then loses conversational filler ("yeah, so", "the reason
is") and is split where one answer lists several reasons joined by "and"
or "also". Results are deduplicated by a normalized key, keeping
first-seen order.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from claimchaser.schemas.call import ExtractedData
from claimchaser.schemas.conversation import TranscriptTurn

DENIAL_KEYWORDS = ("denied", "denial", "rejected", "not covered", "not eligible")
NEXT_STEP_PHRASES = ("next step", "you need to", "to fix", "to resolve")
MIN_SENTENCE_CHARS = 20

_REASON = r"([^.;!?\n]+)"
DENIAL_TEMPLATES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern + _REASON, re.IGNORECASE)
    for pattern in (
        r"denied because\s+",
        r"denial reason:\s*",
        r"reason for denial:\s*",
        r"denied (?:due to|for)\s+",
        r"rejected because\s+",
        r"not covered because\s+",
        r"not eligible because\s+",
    )
)

MIN_REASON_CHARS = 10
MAX_SPLIT_DEPTH = 5

FILLER_PREFIXES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(?:yeah|yes|well|um|uh|so|okay)\b[,.]?\s+",
        r"^(?:it|the claim) (?:was|is) denied because\s+",
        r"^it's denied because\s+",
        r"^the (?:denial )?reason (?:is|was)\s*:?\s+",
        r"^(?:because|due to)\s+",
    )
)

# (separator, text restored at the start of every following part)
REASON_SPLITS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), restore)
    for pattern, restore in (
        (r"\s+and\s+the\s+(?:claim\s+)?(?:was|is)\s+", "the claim was "),
        (r"\s+and\s+there\s+(?:was|is)\s+", "there was "),
        (r"\s+and\s+the\s+absence\s+of\s+", ""),
        (r"\s+and\s+(?:the\s+)?(?:claim\s+)?(?:was\s+)?missing\s+", "the claim was missing "),
        (r",\s+and\s+", ""),
        (r"\s+and\s+(?=(?:the|there|a|an|no)\s)", ""),
        (r"\s+also,?\s+(?:the\s+)?(?:claim\s+)?(?:was|is)\s+", ""),
        (r",\s+also\s+", ""),
    )
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_TRAILING_PUNCT = re.compile(r"[.,!?;:]+$")
_WHITESPACE = re.compile(r"\s+")


def normalize_reason(text: str) -> str:
    """Dedup key: lowercase, collapsed whitespace, no trailing punctuation."""
    key = _WHITESPACE.sub(" ", text.strip().lower())
    return _TRAILING_PUNCT.sub("", key).strip()


def clean_reason(text: str) -> str:
    """Stored form: trimmed, without trailing punctuation."""
    return _TRAILING_PUNCT.sub("", text.strip()).strip()


def _has_denial_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in DENIAL_KEYWORDS)


def _is_instruction(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in NEXT_STEP_PHRASES)


def _is_question(text: str) -> bool:
    return text.rstrip().endswith("?")


def _template_matches(text: str) -> list[str]:
    found: list[tuple[int, str]] = []
    for template in DENIAL_TEMPLATES:
        found.extend((match.start(), match.group(1)) for match in template.finditer(text))
    return [reason for _, reason in sorted(found, key=lambda item: item[0])]


def strip_filler(text: str) -> str:
    """Drop leading filler words and restated denial lead-ins."""
    stripped = text.strip()
    changed = True
    while changed:
        changed = False
        for prefix in FILLER_PREFIXES:
            shorter = prefix.sub("", stripped, count=1)
            if shorter != stripped:
                stripped, changed = shorter.strip(), True
    return stripped or text.strip()


def split_reasons(text: str, depth: int = 0) -> list[str]:
    """
    Split an answer listing several reasons into one string per reason.

    Only the first separator that occurs is split on; each part is then
    split again. Parts shorter than ``MIN_REASON_CHARS`` are dropped, and
    if nothing survives the text is returned whole.
    """
    text = text.strip()
    if depth >= MAX_SPLIT_DEPTH:
        return [text]

    for separator, restore in REASON_SPLITS:
        parts = separator.split(text)
        if len(parts) < 2:
            continue
        pieces: list[str] = []
        for index, part in enumerate(parts):
            part = part.strip()
            if index and restore:
                part = restore + part
            pieces.extend(split_reasons(part, depth + 1))
        pieces = [piece for piece in pieces if len(clean_reason(piece)) >= MIN_REASON_CHARS]
        return pieces or [text]
    return [text]


def is_valid_reason(text: str) -> bool:
    """A standalone reason: long enough and neither a question nor an instruction."""
    if _is_question(text) or _is_instruction(text):
        return False
    return len(clean_reason(text)) >= MIN_REASON_CHARS


def dedupe_reasons(candidates: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    reasons: list[str] = []
    for candidate in candidates:
        key = normalize_reason(candidate)
        if not key or key in seen:
            continue
        seen.add(key)
        reasons.append(clean_reason(candidate))
    return reasons


def _from_turns(rep_turns: list[TranscriptTurn]) -> list[str]:
    candidates: list[str] = []
    for turn in rep_turns:
        text = turn.message.strip()
        if not text or not _has_denial_keyword(text):
            continue
        captured = _template_matches(text)
        if captured:
            candidates.extend(captured)
        elif not _is_instruction(text) and not _is_question(text):
            candidates.append(text)
    return candidates


def _from_sentences(rep_turns: list[TranscriptTurn]) -> list[str]:
    candidates: list[str] = []
    for turn in rep_turns:
        for sentence in _SENTENCE_SPLIT.split(turn.message.strip()):
            sentence = sentence.strip()
            if len(sentence) < MIN_SENTENCE_CHARS or not _has_denial_keyword(sentence):
                continue
            if _is_instruction(sentence) or _is_question(sentence):
                continue
            candidates.append(sentence)
    return candidates


def find_next_steps(rep_turns: list[TranscriptTurn]) -> Optional[str]:
    for turn in rep_turns:
        text = turn.message.strip()
        if text and _is_instruction(text):
            return text
    return None


def extract(turns: list[TranscriptTurn]) -> ExtractedData:
    rep_turns = [turn for turn in turns if turn.is_representative]

    candidates = _from_turns(rep_turns)
    if not candidates:
        full_text = "\n".join(turn.message for turn in turns if turn.message)
        candidates = _template_matches(full_text)
    if not candidates:
        candidates = _from_sentences(rep_turns)

    reasons = [part for candidate in candidates for part in split_reasons(strip_filler(candidate))]
    return ExtractedData(
        denial_reasons=dedupe_reasons(reasons),
        next_steps=find_next_steps(rep_turns),
    )
