import json
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Set

from core.logger import logger
from models.flashcard import Flashcard, QuizQuestion

FENCE_OPEN_RE = re.compile(r"^```[\w+-]*[ \t]*\n?")
FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


class ParserError(Exception):
    """Generation output that could not be turned into study items."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class ResponseParseError(ParserError):
    """The output is not valid JSON."""


class ResponseSchemaError(ParserError):
    """The output is valid JSON but not an array."""


class EmptyResultError(ParserError):
    """The output is a non-empty array without a single valid item."""


@dataclass
class ParsedGeneration:
    """Both kinds of a generation response, normalized independently."""
    flashcards: List[Flashcard]
    quiz_questions: List[QuizQuestion]
    flashcard_error: Optional[ParserError] = None
    quiz_error: Optional[ParserError] = None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```) if present."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = FENCE_OPEN_RE.sub("", text, count=1)
    # A truncated response may miss the closing fence
    text = FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


class _IdAllocator:
    """Hands out ids unique within one normalization call and apart from `reserved`."""

    def __init__(self, prefix: str, stamp: int, reserved: Optional[Iterable[str]] = None):
        self.prefix = prefix
        self.stamp = stamp
        self.used: Set[str] = set(reserved or ())

    def assign(self, supplied: Any, index: int) -> str:
        candidate = _text(supplied)
        if not candidate or candidate in self.used:
            candidate = f"{self.prefix}-{self.stamp}-{index}"
            suffix = 1
            while candidate in self.used:
                candidate = f"{self.prefix}-{self.stamp}-{index}-{suffix}"
                suffix += 1
        self.used.add(candidate)
        return candidate


def _load_array(raw: Any, kind: str) -> list:
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        content = strip_code_fences(raw)
        if not content:
            return []
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Could not parse {kind} JSON: {e.msg} (line {e.lineno}, column {e.colno})", raw=raw)
    else:
        data = raw

    if not isinstance(data, list):
        raise ResponseSchemaError(f"Generated {kind} data is not an array.", raw=raw)
    return data


def normalize_flashcards(
    raw: Any, stamp: Optional[int] = None, reserved_ids: Optional[Iterable[str]] = None
) -> List[Flashcard]:
    """
    Turn raw generation output into valid flashcards.

    Args:
        raw: JSON string (optionally wrapped in a code fence) or parsed data
        stamp: Timestamp used for synthesized ids, defaults to now in ms
        reserved_ids: Ids already in use, e.g. by the session being expanded

    Raises:
        ResponseParseError, ResponseSchemaError, EmptyResultError
    """
    items = _load_array(raw, "flashcard")
    ids = _IdAllocator("fc", stamp if stamp is not None else _now_ms(), reserved_ids)

    cards = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        question = _text(item.get("question")) or _text(item.get("front"))
        answer = _text(item.get("answer")) or _text(item.get("back"))
        if not question or not answer:
            continue
        cards.append(Flashcard(id=ids.assign(item.get("id"), index), question=question, answer=answer))

    if items and not cards:
        raise EmptyResultError("No valid flashcards generated from non-empty AI response.", raw=raw)

    dropped = len(items) - len(cards)
    if dropped:
        logger.warning("Dropped invalid flashcards", dropped=dropped, kept=len(cards))
    return cards


def _resolve_correct_answer(item: dict, options_raw: list) -> str:
    correct = _text(item.get("correctAnswer")) or _text(item.get("correct_answer"))
    if correct:
        return correct

    # Index form: {"options": [...], "correct_option_id": 0}
    index = item.get("correct_option_id")
    if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(options_raw):
        return _text(options_raw[index])
    return ""


def normalize_quiz_questions(
    raw: Any, stamp: Optional[int] = None, reserved_ids: Optional[Iterable[str]] = None
) -> List[QuizQuestion]:
    """
    Turn raw generation output into valid quiz questions.

    A question survives only with non-empty text, at least two distinct
    options and a correct answer that is one of them.
    """
    items = _load_array(raw, "quiz question")
    ids = _IdAllocator("qz", stamp if stamp is not None else _now_ms(), reserved_ids)

    questions = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        question = _text(item.get("question"))
        options_raw = item.get("options")
        if not question or not isinstance(options_raw, list):
            continue

        options: List[str] = []
        for option in options_raw:
            option_text = _text(option)
            if option_text and option_text not in options:
                options.append(option_text)

        correct = _resolve_correct_answer(item, options_raw)
        if len(options) < 2 or not correct or correct not in options:
            continue

        questions.append(QuizQuestion(
            id=ids.assign(item.get("id"), index),
            question=question,
            options=options,
            correct_answer=correct,
        ))

    if items and not questions:
        raise EmptyResultError("No valid quiz questions generated from non-empty AI response.", raw=raw)

    dropped = len(items) - len(questions)
    if dropped:
        logger.warning("Dropped invalid quiz questions", dropped=dropped, kept=len(questions))
    return questions


def parse_generation_result(
    flashcards_raw: Any,
    quiz_raw: Any = None,
    stamp: Optional[int] = None,
    reserved_ids: Optional[Iterable[str]] = None,
) -> ParsedGeneration:
    """Normalize both kinds; a failure in one never blocks the other."""
    stamp = stamp if stamp is not None else _now_ms()
    reserved_ids = set(reserved_ids or ())
    parsed = ParsedGeneration(flashcards=[], quiz_questions=[])

    try:
        parsed.flashcards = normalize_flashcards(flashcards_raw, stamp=stamp, reserved_ids=reserved_ids)
    except ParserError as e:
        logger.warning("Flashcard parsing failed", error=str(e), kind=type(e).__name__)
        parsed.flashcard_error = e

    try:
        parsed.quiz_questions = normalize_quiz_questions(quiz_raw, stamp=stamp, reserved_ids=reserved_ids)
    except ParserError as e:
        logger.warning("Quiz question parsing failed", error=str(e), kind=type(e).__name__)
        parsed.quiz_error = e

    return parsed
