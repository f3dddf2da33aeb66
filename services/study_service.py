from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.config import settings
from core.logger import logger
from models.generation import GenerationRequest
from models.session import Difficulty, PendingReplace, ReplaceOrigin, View
from services.ai_service import AIService
from services.deck_service import FlashcardDeck
from services.expansion_service import ExpansionCoordinator, ExpansionResult
from services.pdf_service import PdfMetadata, extract_text_from_pdf
from services.quiz_service import QuizEngine
from services.search_service import is_search_error, search_web
from services.session_service import SessionStore
from utils.data_uri import encode_data_uri
from utils.exporter import ImportValidationError, export_session, parse_import
from utils.parser import ParserError, parse_generation_result

SearchFunction = Callable[[str], Awaitable[Optional[str]]]


class InputError(ValueError):
    """User input rejected before any external call."""
    pass


@dataclass
class PdfContext:
    filename: str
    text: str
    metadata: Optional[PdfMetadata] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())


@dataclass
class PdfLoadResult:
    success: bool
    message: str
    context: Optional[PdfContext] = None
    # Rejected before extraction (wrong type or too large)
    rejected: bool = False


@dataclass
class GenerateOutcome:
    status: str  # replaced, confirmation_required, parse_error, no_content, invalid_input, service_error
    message: str
    flashcards: int = 0
    quiz_questions: int = 0
    flashcard_error: Optional[str] = None
    flashcard_raw: Optional[str] = None
    quiz_error: Optional[str] = None
    quiz_raw: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    web_search_context: Optional[str] = None
    pending: Optional[PendingReplace] = None


@dataclass
class ImportOutcome:
    status: str  # replaced, confirmation_required, invalid_input
    message: str
    flashcards: int = 0
    quiz_questions: int = 0
    pending: Optional[PendingReplace] = None


def _raw_text(error: Optional[ParserError]) -> Optional[str]:
    if error is None or error.raw is None:
        return None
    return error.raw if isinstance(error.raw, str) else str(error.raw)


class StudyService:
    """
    One study session: the store, the quiz engine and the deck wired
    together, plus the user-facing actions of the app.
    """

    def __init__(
        self,
        ai_service: Optional[AIService] = None,
        search: Optional[SearchFunction] = None,
        quiz_engine: Optional[QuizEngine] = None,
        deck: Optional[FlashcardDeck] = None,
    ):
        self.ai = ai_service or AIService()
        self.search = search or search_web
        self.active_view = View.GENERATE
        self.store = SessionStore(on_navigate=self._set_view)
        self.quiz = quiz_engine or QuizEngine()
        self.deck = deck or FlashcardDeck()
        self.expansion = ExpansionCoordinator(self.ai, self.store, self.quiz)
        self.pdf: Optional[PdfContext] = None
        self.last_topic: Optional[str] = None

    def _set_view(self, view: View):
        self.active_view = view

    def refresh(self):
        """Re-derive quiz and deck from the session; call after every mutation."""
        self.quiz.recompute(self.store.flashcards, self.store.quiz_questions, self.store.epoch)
        self.deck.sync(self.store.flashcards)

    # --- navigation ------------------------------------------------------

    def available_views(self) -> List[View]:
        views = [View.GENERATE]
        flashcards = self.store.flashcards
        if flashcards:
            views.append(View.FLASHCARDS)
        if self.store.quiz_questions or len(flashcards) >= QuizEngine.MIN_AUTO_FLASHCARDS:
            views.append(View.QUIZ)
        return views

    def navigate(self, view) -> bool:
        view = View(view)
        if view not in self.available_views():
            return False
        self.active_view = view
        return True

    # --- PDF context -----------------------------------------------------

    async def load_pdf(self, data: bytes, filename: str, content_type: Optional[str] = None) -> PdfLoadResult:
        filename = filename or "document.pdf"
        is_pdf = content_type == "application/pdf" or (
            content_type in (None, "", "application/octet-stream") and filename.lower().endswith(".pdf")
        )
        if not is_pdf:
            return PdfLoadResult(success=False, message="Please upload a PDF file.", context=self.pdf, rejected=True)
        if len(data) > settings.FILE_SIZE_LIMIT_MB * 1024 * 1024:
            return PdfLoadResult(
                success=False,
                message=f"Please upload a PDF smaller than {settings.FILE_SIZE_LIMIT_MB}MB.",
                context=self.pdf,
                rejected=True,
            )

        result = await extract_text_from_pdf(encode_data_uri(data, "application/pdf"))
        if not result.success and not (result.error or "").startswith("No text content found"):
            message = f"Could not extract text from {filename}: {result.error}"
            if self.pdf and self.pdf.filename != filename:
                message += f". Using previous PDF: {self.pdf.filename}."
            else:
                self.pdf = None
            logger.warning("PDF extraction failed", filename=filename, error=result.error)
            return PdfLoadResult(success=False, message=message, context=self.pdf)

        self.pdf = PdfContext(filename=filename, text=result.extracted_text, metadata=result.metadata)
        pages = result.metadata.page_count if result.metadata else None
        page_info = f" ({pages} page{'s' if pages != 1 else ''})" if pages else ""
        if self.pdf.has_text:
            message = f"Extracted {len(self.pdf.text)} characters from {filename}{page_info}."
        else:
            message = f"No text content found in {filename}{page_info}."
        logger.info("PDF context loaded", filename=filename, chars=len(self.pdf.text))
        return PdfLoadResult(success=True, message=message, context=self.pdf)

    def clear_pdf(self):
        if self.pdf:
            logger.info("PDF context cleared", filename=self.pdf.filename)
        self.pdf = None

    # --- generate --------------------------------------------------------

    @staticmethod
    def _validate_count(value, name: str, minimum: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InputError(f"{name} must be a whole number.")
        if not minimum <= value <= settings.MAX_ITEMS_PER_REQUEST:
            raise InputError(f"{name} must be between {minimum} and {settings.MAX_ITEMS_PER_REQUEST}.")
        return value

    async def generate(
        self,
        prompt: str = "",
        num_flashcards: Optional[int] = None,
        num_quiz_questions: Optional[int] = None,
        difficulty=None,
        use_web_search: bool = False,
    ) -> GenerateOutcome:
        prompt = (prompt or "").strip()
        try:
            if not prompt and self.pdf is None:
                raise InputError("Prompt or processed PDF content is required.")
            num_flashcards = self._validate_count(
                settings.DEFAULT_NUM_FLASHCARDS if num_flashcards is None else num_flashcards,
                "Number of flashcards", 1,
            )
            num_quiz_questions = self._validate_count(
                0 if num_quiz_questions is None else num_quiz_questions, "Number of quiz questions", 0
            )
            try:
                difficulty = Difficulty(difficulty or settings.DEFAULT_DIFFICULTY)
            except ValueError:
                raise InputError("Difficulty must be one of Easy, Medium, Hard, Expert.")
        except InputError as e:
            return GenerateOutcome(status="invalid_input", message=str(e))

        warnings: List[str] = []
        web_context = None
        if use_web_search:
            query = prompt or (self.pdf.filename if self.pdf else "content from PDF")
            found = await self.search(query)
            if is_search_error(found):
                warnings.append(found)
                logger.warning("Web search failed, generating without context", query=query)
            elif found:
                web_context = found
            else:
                warnings.append(f'No specific context found from web search for "{query}".')

        request = GenerationRequest(
            prompt=prompt or f"Using content from PDF: {self.pdf.filename}. Focus on its key topics.",
            pdf_text=self.pdf.text if self.pdf and self.pdf.has_text else None,
            web_search_context=web_context,
            num_flashcards=num_flashcards,
            num_quiz_questions=num_quiz_questions,
            difficulty=difficulty,
        )
        result, error = await self.ai.generate_flashcards(request)
        if error or result is None:
            logger.error("Generation failed", error=error)
            return GenerateOutcome(
                status="service_error", message=error or "An unknown error occurred.",
                warnings=warnings, web_search_context=web_context,
            )

        parsed = parse_generation_result(result.flashcards, result.quiz_questions)
        outcome = GenerateOutcome(
            status="no_content",
            message="AI did not generate valid flashcards or quiz questions.",
            flashcards=len(parsed.flashcards),
            quiz_questions=len(parsed.quiz_questions),
            flashcard_error=str(parsed.flashcard_error) if parsed.flashcard_error else None,
            flashcard_raw=_raw_text(parsed.flashcard_error),
            quiz_error=str(parsed.quiz_error) if parsed.quiz_error else None,
            quiz_raw=_raw_text(parsed.quiz_error),
            warnings=warnings,
            web_search_context=web_context,
        )

        if not parsed.flashcards and not parsed.quiz_questions:
            if parsed.flashcard_error or parsed.quiz_error:
                outcome.status = "parse_error"
                outcome.message = "Could not fully parse the AI response."
            return outcome

        self.last_topic = prompt or (self.pdf.filename if self.pdf else None)
        pending = self.store.request_replace(parsed.flashcards, parsed.quiz_questions, ReplaceOrigin.GENERATE)
        if pending:
            outcome.status = "confirmation_required"
            outcome.message = pending.description
            outcome.pending = pending
            return outcome

        self.refresh()
        outcome.status = "replaced"
        outcome.message = (
            f"Generated {outcome.flashcards} flashcards and {outcome.quiz_questions} quiz questions."
        )
        return outcome

    # --- confirmation ----------------------------------------------------

    def confirm(self, token: str) -> bool:
        if not self.store.confirm_replace(token):
            return False
        self.refresh()
        return True

    def cancel(self, token: Optional[str] = None) -> bool:
        return self.store.cancel_replace(token)

    def clear(self):
        self.store.clear()
        self.last_topic = None
        self.refresh()

    # --- expansion -------------------------------------------------------

    async def expand(self, kind, count, difficulty=None) -> ExpansionResult:
        try:
            difficulty = Difficulty(difficulty) if difficulty else None
        except ValueError:
            return ExpansionResult(status="invalid_input", message="Difficulty must be one of Easy, Medium, Hard, Expert.")
        result = await self.expansion.expand(kind, count, topic=self.last_topic, difficulty=difficulty)
        if result.status == "added":
            self.refresh()
        return result

    # --- import / export -------------------------------------------------

    def import_file(self, content: bytes, filename: str, content_type: Optional[str] = None) -> ImportOutcome:
        is_json = content_type == "application/json" or (filename or "").lower().endswith(".json")
        if not is_json:
            return ImportOutcome(status="invalid_input", message="Please select a JSON file to import.")
        try:
            data = parse_import(content)
        except ImportValidationError as e:
            logger.warning("Import rejected", filename=filename, error=str(e))
            return ImportOutcome(status="invalid_input", message=str(e))

        outcome = ImportOutcome(
            status="replaced",
            message=f"Imported {len(data.flashcards)} flashcards and {len(data.quiz_questions)} quiz questions.",
            flashcards=len(data.flashcards),
            quiz_questions=len(data.quiz_questions),
        )
        pending = self.store.request_replace(data.flashcards, data.quiz_questions, ReplaceOrigin.IMPORT)
        if pending:
            outcome.status = "confirmation_required"
            outcome.message = pending.description
            outcome.pending = pending
            return outcome

        self.refresh()
        return outcome

    def export(self) -> str:
        """
        Raises:
            InputError: when the session is empty
        """
        if self.store.is_empty():
            raise InputError("There is no data to export.")
        return export_session(self.store.flashcards, self.store.quiz_questions)

    # --- speech ----------------------------------------------------------

    async def transcribe(self, audio: bytes, content_type: Optional[str] = None):
        """
        Raises:
            InputError: when no audio was recorded
        """
        if not audio:
            raise InputError("No audio recorded.")
        return await self.ai.transcribe(encode_data_uri(audio, content_type or "audio/webm"))

    async def speak(self, text: str):
        return await self.ai.synthesize_speech(text)

