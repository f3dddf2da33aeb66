import json
from dataclasses import dataclass
from typing import Optional

from core.config import settings
from core.logger import logger
from models.generation import GenerationRequest
from models.session import Difficulty, ItemKind
from services.ai_service import AIService
from services.quiz_service import QuizEngine
from services.session_service import SessionStore
from utils.parser import ParserError, parse_generation_result


@dataclass
class ExpansionResult:
    status: str  # added, no_new_items, invalid_input, service_error, parse_error
    flashcards_added: int = 0
    quiz_questions_added: int = 0
    message: str = ""
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("added", "no_new_items")


def _parse_count(count) -> Optional[int]:
    if isinstance(count, bool):
        return None
    if isinstance(count, float):
        return int(count) if count.is_integer() else None
    try:
        return int(str(count).strip())
    except (TypeError, ValueError):
        return None


class ExpansionCoordinator:
    """
    Appends newly generated flashcards or quiz questions to the session.

    Stateless per call; callers keep it single-flight.
    """

    def __init__(self, ai_service: AIService, store: SessionStore, quiz_engine: Optional[QuizEngine] = None):
        self.ai_service = ai_service
        self.store = store
        self.quiz_engine = quiz_engine

    def _build_request(self, kind: ItemKind, count: int, topic: Optional[str], difficulty: Optional[Difficulty]):
        label = "flashcards" if kind == ItemKind.FLASHCARDS else "multiple-choice quiz questions"
        subject = f' about "{topic}"' if topic else " on the same subject as the existing items"
        existing_flashcards = json.dumps(
            [card.model_dump() for card in self.store.flashcards], ensure_ascii=False
        )
        existing_quiz = json.dumps(
            [q.model_dump(by_alias=True) for q in self.store.quiz_questions], ensure_ascii=False
        )
        return GenerationRequest(
            prompt=f"Generate {count} new, distinct {label}{subject}. "
                   "Do not repeat any of the existing items.",
            num_flashcards=count if kind == ItemKind.FLASHCARDS else 0,
            num_quiz_questions=count if kind == ItemKind.QUIZ else 0,
            existing_flashcards=existing_flashcards,
            existing_quiz_questions=existing_quiz,
            difficulty=difficulty,
        )

    async def expand(
        self,
        kind,
        count,
        topic: Optional[str] = None,
        difficulty: Optional[Difficulty] = None,
    ) -> ExpansionResult:
        try:
            kind = ItemKind(kind)
        except ValueError:
            return ExpansionResult(status="invalid_input", message=f"Unknown item kind: {kind}.")

        num = _parse_count(count)
        if num is None or num < 1:
            return ExpansionResult(status="invalid_input", message="Please enter a positive number of items to add.")
        if num > settings.MAX_ITEMS_PER_REQUEST:
            return ExpansionResult(
                status="invalid_input",
                message=f"You can add at most {settings.MAX_ITEMS_PER_REQUEST} items at a time.",
            )

        request = self._build_request(kind, num, topic, difficulty)
        logger.info("Expansion requested", kind=kind.value, count=num, topic=topic)

        result, error = await self.ai_service.generate_flashcards(request)
        if error or result is None:
            logger.error("Expansion generation failed", kind=kind.value, error=error)
            return ExpansionResult(status="service_error", message=f"Failed to add {kind.value}: {error}")

        parsed = parse_generation_result(
            result.flashcards if kind == ItemKind.FLASHCARDS else None,
            result.quiz_questions if kind == ItemKind.QUIZ else None,
            reserved_ids=[card.id for card in self.store.flashcards] + [q.id for q in self.store.quiz_questions],
        )
        parse_error: Optional[ParserError] = (
            parsed.flashcard_error if kind == ItemKind.FLASHCARDS else parsed.quiz_error
        )
        if parse_error:
            return ExpansionResult(
                status="parse_error",
                message=f"Could not read the new {kind.value}: {parse_error}",
                detail=parse_error.raw if isinstance(parse_error.raw, str) else None,
            )

        if kind == ItemKind.FLASHCARDS:
            new_items = parsed.flashcards
            if new_items:
                self.store.append(new_items, [])
        else:
            new_items = parsed.quiz_questions
            if new_items:
                self.store.append([], new_items)

        if not new_items:
            logger.info("Expansion returned no new items", kind=kind.value)
            return ExpansionResult(status="no_new_items", message=f"No new {kind.value} were generated.")

        if self.quiz_engine is not None:
            self.quiz_engine.recompute(self.store.flashcards, self.store.quiz_questions, self.store.epoch)

        added_flashcards = len(new_items) if kind == ItemKind.FLASHCARDS else 0
        added_quiz = len(new_items) if kind == ItemKind.QUIZ else 0
        label = "flashcard" if kind == ItemKind.FLASHCARDS else "quiz question"
        return ExpansionResult(
            status="added",
            flashcards_added=added_flashcards,
            quiz_questions_added=added_quiz,
            message=f"Added {len(new_items)} new {label}{'s' if len(new_items) != 1 else ''}.",
        )
