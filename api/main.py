from contextlib import asynccontextmanager
from typing import Any, List, Optional, Union

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from core.config import settings
from core.logger import logger, setup_logging
from models.flashcard import Flashcard, QuizQuestion
from models.session import PendingReplace, QuizMode, View
from services.study_service import GenerateOutcome, InputError, StudyService
from services.task_manager import TaskBusyError, task_manager

# API Documentation
API_DESCRIPTION = """
## FlashZen API

AI-assisted study sessions: generate flashcards and quiz questions from a
topic, a PDF or a web search, browse them as a deck, take quizzes and
expand the set incrementally.

One in-memory study session per process. Replacing a non-empty session
always goes through a confirmation token.
"""

TAGS_METADATA = [
    {"name": "session", "description": "Session contents, overwrite confirmations, import and export."},
    {"name": "generate", "description": "Generation, PDF context and expansion."},
    {"name": "quiz", "description": "Quiz attempts."},
    {"name": "deck", "description": "Flashcard browsing."},
    {"name": "speech", "description": "Speech-to-text and text-to-speech."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("FlashZen API started", env=settings.ENV)
    yield


app = FastAPI(
    title="FlashZen API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_study: Optional[StudyService] = None


def get_study() -> StudyService:
    """The process-wide study session."""
    global _study
    if _study is None:
        _study = StudyService()
    return _study


# === Pydantic Models with Documentation ===

class PendingConfirmation(BaseModel):
    """An overwrite waiting for the user's decision."""
    token: str = Field(..., description="Pass to /api/confirmations/{token}")
    origin: str = Field(..., description="generate or import")
    title: str
    description: str
    lost_flashcards: int = Field(..., description="Flashcards that will be replaced")
    lost_quiz_questions: int = Field(..., description="Quiz questions that will be replaced")

    @classmethod
    def from_pending(cls, pending: Optional[PendingReplace]) -> Optional["PendingConfirmation"]:
        if pending is None:
            return None
        return cls(
            token=pending.token,
            origin=pending.origin.value,
            title=pending.title,
            description=pending.description,
            lost_flashcards=pending.lost_flashcards,
            lost_quiz_questions=pending.lost_quiz_questions,
        )


class PdfInfo(BaseModel):
    filename: str
    has_text: bool
    char_count: int
    page_count: Optional[int] = None


class SessionView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flashcards: List[Flashcard]
    quiz_questions: List[QuizQuestion] = Field(..., alias="quizQuestions")
    active_view: View
    available_views: List[View]
    pending: Optional[PendingConfirmation] = None
    pdf: Optional[PdfInfo] = None
    last_topic: Optional[str] = None


class GenerateRequest(BaseModel):
    """Request body for generating a new study set."""
    prompt: str = Field("", description="Topic or instruction; optional when a PDF is loaded", max_length=5000)
    num_flashcards: Any = Field(settings.DEFAULT_NUM_FLASHCARDS, description="Flashcards to generate")
    num_quiz_questions: Any = Field(0, description="Quiz questions to generate; 0 for none")
    difficulty: Optional[str] = Field(None, examples=["Medium"])
    use_web_search: bool = Field(False, description="Add DuckDuckGo context to the prompt")


class GenerateResponse(BaseModel):
    status: str
    message: str
    flashcards: int
    quiz_questions: int
    flashcard_error: Optional[str] = None
    flashcard_raw: Optional[str] = None
    quiz_error: Optional[str] = None
    quiz_raw: Optional[str] = None
    warnings: List[str] = []
    web_search_context: Optional[str] = None
    pending: Optional[PendingConfirmation] = None


class ExpandRequest(BaseModel):
    kind: str = Field(..., description="flashcards or quiz", examples=["flashcards"])
    count: Union[int, str, None] = Field(..., description="Number of new items (positive integer)", examples=[5])
    difficulty: Optional[str] = None


class ExpandResponse(BaseModel):
    status: str
    message: str
    flashcards_added: int
    quiz_questions_added: int
    detail: Optional[str] = None


class ImportResponse(BaseModel):
    status: str
    message: str
    flashcards: int
    quiz_questions: int
    pending: Optional[PendingConfirmation] = None


class PdfResponse(BaseModel):
    success: bool
    message: str
    pdf: Optional[PdfInfo] = None


class QuestionView(BaseModel):
    """A quiz question as shown to the player; the answer is revealed once answered."""
    id: str
    question: str
    options: List[str]
    correct_answer: Optional[str] = None


class QuizView(BaseModel):
    mode: QuizMode
    total: int
    current_index: int
    current_question: Optional[QuestionView] = None
    selected_answer: Optional[str] = None
    answered: bool
    is_correct: Optional[bool] = None
    score: int
    completed: bool
    pending_questions: int = Field(0, description="New AI questions shown after a restart")
    max_auto_questions: int = Field(0, description="Upper bound when deriving a quiz from flashcards")


class QuizStartRequest(BaseModel):
    count: Union[int, str, None] = Field(..., examples=[3])


class AnswerRequest(BaseModel):
    option: str


class DeckView(BaseModel):
    total: int
    current_index: int
    is_flipped: bool
    card: Optional[Flashcard] = None


class TranscriptionResponse(BaseModel):
    text: str
    message: str


class SpeechRequest(BaseModel):
    text: str = Field(..., max_length=5000)


class SpeechResponse(BaseModel):
    audio: str = Field(..., description="Audio as a data URI")


# === Views ===

def _pdf_info(study: StudyService) -> Optional[PdfInfo]:
    if study.pdf is None:
        return None
    metadata = study.pdf.metadata
    return PdfInfo(
        filename=study.pdf.filename,
        has_text=study.pdf.has_text,
        char_count=len(study.pdf.text),
        page_count=metadata.page_count if metadata else None,
    )


def _session_view(study: StudyService) -> SessionView:
    return SessionView(
        flashcards=study.store.flashcards,
        quiz_questions=study.store.quiz_questions,
        active_view=study.active_view,
        available_views=study.available_views(),
        pending=PendingConfirmation.from_pending(study.store.pending),
        pdf=_pdf_info(study),
        last_topic=study.last_topic,
    )


def _quiz_view(study: StudyService) -> QuizView:
    engine = study.quiz
    state = engine.state
    question = engine.current_question
    current = None
    is_correct = None
    if question is not None:
        current = QuestionView(
            id=question.id,
            question=question.question,
            options=question.options,
            correct_answer=question.correct_answer if state.answered else None,
        )
        if state.answered:
            is_correct = state.selected_answer == question.correct_answer
    return QuizView(
        mode=state.mode,
        total=len(state.questions),
        current_index=state.current_index,
        current_question=current,
        selected_answer=state.selected_answer,
        answered=state.answered,
        is_correct=is_correct,
        score=state.score,
        completed=state.completed,
        pending_questions=engine.pending_questions,
        max_auto_questions=engine.max_auto_questions,
    )


def _deck_view(study: StudyService) -> DeckView:
    state = study.deck.state
    return DeckView(
        total=len(state.cards),
        current_index=state.current_index,
        is_flipped=state.is_flipped,
        card=study.deck.current_card,
    )


def _generate_response(outcome: GenerateOutcome) -> GenerateResponse:
    return GenerateResponse(
        status=outcome.status,
        message=outcome.message,
        flashcards=outcome.flashcards,
        quiz_questions=outcome.quiz_questions,
        flashcard_error=outcome.flashcard_error,
        flashcard_raw=outcome.flashcard_raw,
        quiz_error=outcome.quiz_error,
        quiz_raw=outcome.quiz_raw,
        warnings=outcome.warnings,
        web_search_context=outcome.web_search_context,
        pending=PendingConfirmation.from_pending(outcome.pending),
    )


# === Session ===

@app.get("/api/session", response_model=SessionView, tags=["session"],
         summary="Get the study session")
async def get_session(study: StudyService = Depends(get_study)):
    return _session_view(study)


@app.delete("/api/session", response_model=SessionView, tags=["session"],
            summary="Clear the study session")
async def clear_session(study: StudyService = Depends(get_study)):
    study.clear()
    return _session_view(study)


@app.post("/api/view/{view}", response_model=SessionView, tags=["session"],
          summary="Switch the active view")
async def switch_view(view: View, study: StudyService = Depends(get_study)):
    if not study.navigate(view):
        raise HTTPException(status_code=409, detail=f"The {view.value} view is not available yet.")
    return _session_view(study)


@app.post(
    "/api/confirmations/{token}",
    response_model=SessionView,
    tags=["session"],
    summary="Confirm an overwrite",
    responses={409: {"description": "Stale or unknown confirmation"}},
)
async def confirm_replace(token: str, study: StudyService = Depends(get_study)):
    if not study.confirm(token):
        raise HTTPException(status_code=409, detail="This confirmation is no longer valid.")
    return _session_view(study)


@app.delete(
    "/api/confirmations/{token}",
    response_model=SessionView,
    tags=["session"],
    summary="Cancel an overwrite",
    responses={404: {"description": "No such pending confirmation"}},
)
async def cancel_replace(token: str, study: StudyService = Depends(get_study)):
    if not study.cancel(token):
        raise HTTPException(status_code=404, detail="No pending confirmation with this token.")
    return _session_view(study)


@app.post("/api/import", response_model=ImportResponse, tags=["session"], summary="Import a JSON export",
          responses={400: {"description": "Invalid file; nothing was imported"}})
async def import_session(file: UploadFile = File(...), study: StudyService = Depends(get_study)):
    content = await file.read()
    outcome = study.import_file(content, file.filename or "", file.content_type)
    if outcome.status == "invalid_input":
        raise HTTPException(status_code=400, detail=outcome.message)
    return ImportResponse(
        status=outcome.status,
        message=outcome.message,
        flashcards=outcome.flashcards,
        quiz_questions=outcome.quiz_questions,
        pending=PendingConfirmation.from_pending(outcome.pending),
    )


@app.get("/api/export", tags=["session"], summary="Download the session as JSON",
         responses={400: {"description": "Nothing to export"}})
async def export_session(study: StudyService = Depends(get_study)):
    try:
        content = study.export()
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{settings.EXPORT_FILENAME}"'},
    )


# === Generation ===

@app.post(
    "/api/generate",
    response_model=GenerateResponse,
    tags=["generate"],
    summary="Generate a new study set",
    responses={400: {"description": "Invalid input"}, 409: {"description": "A generation is already running"}},
)
async def generate(body: GenerateRequest, study: StudyService = Depends(get_study)):
    try:
        outcome = await task_manager.run("generate", study.generate(
            prompt=body.prompt,
            num_flashcards=body.num_flashcards,
            num_quiz_questions=body.num_quiz_questions,
            difficulty=body.difficulty,
            use_web_search=body.use_web_search,
        ))
    except TaskBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if outcome.status == "invalid_input":
        raise HTTPException(status_code=400, detail=outcome.message)
    return _generate_response(outcome)


@app.post(
    "/api/expand",
    response_model=ExpandResponse,
    tags=["generate"],
    summary="Add more flashcards or quiz questions",
    responses={400: {"description": "Invalid input"}, 409: {"description": "An expansion is already running"}},
)
async def expand(body: ExpandRequest, study: StudyService = Depends(get_study)):
    try:
        result = await task_manager.run("expand", study.expand(body.kind, body.count, body.difficulty))
    except TaskBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if result.status == "invalid_input":
        raise HTTPException(status_code=400, detail=result.message)
    return ExpandResponse(
        status=result.status,
        message=result.message,
        flashcards_added=result.flashcards_added,
        quiz_questions_added=result.quiz_questions_added,
        detail=result.detail,
    )


@app.post("/api/pdf", response_model=PdfResponse, tags=["generate"], summary="Load a PDF as context",
          responses={400: {"description": "Not a PDF or too large"}})
async def upload_pdf(file: UploadFile = File(...), study: StudyService = Depends(get_study)):
    data = await file.read()
    result = await study.load_pdf(data, file.filename or "", file.content_type)
    if result.rejected:
        raise HTTPException(status_code=400, detail=result.message)
    return PdfResponse(success=result.success, message=result.message, pdf=_pdf_info(study))


@app.delete("/api/pdf", response_model=PdfResponse, tags=["generate"], summary="Drop the PDF context")
async def clear_pdf(study: StudyService = Depends(get_study)):
    study.clear_pdf()
    return PdfResponse(success=True, message="PDF context cleared.")


# === Quiz ===

@app.get("/api/quiz", response_model=QuizView, tags=["quiz"], summary="Current quiz state")
async def get_quiz(study: StudyService = Depends(get_study)):
    return _quiz_view(study)


@app.post("/api/quiz/start", response_model=QuizView, tags=["quiz"], summary="Start a quiz from flashcards",
          responses={400: {"description": "Invalid question count"}})
async def start_quiz(body: QuizStartRequest, study: StudyService = Depends(get_study)):
    _, error = study.quiz.start_auto_quiz(body.count)
    if error:
        raise HTTPException(status_code=400, detail=error)
    study.active_view = View.QUIZ
    return _quiz_view(study)


@app.post("/api/quiz/answer", response_model=QuizView, tags=["quiz"], summary="Answer the current question",
          responses={409: {"description": "Already answered or not an option"}})
async def answer_question(body: AnswerRequest, study: StudyService = Depends(get_study)):
    if not study.quiz.select_answer(body.option):
        raise HTTPException(status_code=409, detail="Answer not accepted for the current question.")
    return _quiz_view(study)


@app.post("/api/quiz/next", response_model=QuizView, tags=["quiz"], summary="Go to the next question",
          responses={409: {"description": "Current question not answered yet"}})
async def next_question(study: StudyService = Depends(get_study)):
    if not study.quiz.advance():
        raise HTTPException(status_code=409, detail="Answer the current question first.")
    return _quiz_view(study)


@app.post("/api/quiz/restart", response_model=QuizView, tags=["quiz"], summary="Restart the quiz")
async def restart_quiz(study: StudyService = Depends(get_study)):
    study.quiz.restart()
    return _quiz_view(study)


# === Deck ===

@app.get("/api/deck", response_model=DeckView, tags=["deck"], summary="Current flashcard")
async def get_deck(study: StudyService = Depends(get_study)):
    return _deck_view(study)


@app.post("/api/deck/{action}", response_model=DeckView, tags=["deck"], summary="Browse the deck",
          responses={404: {"description": "Unknown action"}})
async def deck_action(action: str, study: StudyService = Depends(get_study)):
    handlers = {
        "next": study.deck.next,
        "previous": study.deck.previous,
        "flip": study.deck.flip,
        "shuffle": study.deck.shuffle,
    }
    handler = handlers.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown deck action: {action}")
    handler()
    return _deck_view(study)


# === Speech ===

@app.post("/api/speech/transcribe", response_model=TranscriptionResponse, tags=["speech"],
          summary="Transcribe recorded audio",
          responses={400: {"description": "No audio"}, 502: {"description": "Transcription failed"}})
async def transcribe(file: UploadFile = File(...), study: StudyService = Depends(get_study)):
    audio = await file.read()
    try:
        text, error = await study.transcribe(audio, file.content_type)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if error:
        raise HTTPException(status_code=502, detail=error)
    message = "Transcription successful." if text else "No speech detected."
    return TranscriptionResponse(text=text, message=message)


@app.post("/api/speech/synthesize", response_model=SpeechResponse, tags=["speech"],
          summary="Read text aloud", responses={400: {"description": "No text"}, 502: {"description": "TTS failed"}})
async def synthesize(body: SpeechRequest, study: StudyService = Depends(get_study)):
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="Text to speak is required.")
    audio, error = await study.speak(body.text)
    if error:
        raise HTTPException(status_code=502, detail=error)
    return SpeechResponse(audio=audio)
