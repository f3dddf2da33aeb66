import json

import fitz
import pytest

from core.config import settings
from models.session import QuizMode, View
from services.study_service import InputError


def _pdf_bytes(text="Photosynthesis converts light into chemical energy."):
    doc = fitz.open()
    page = doc.new_page()
    if text:
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.mark.asyncio
async def test_single_valid_flashcard_on_empty_session(study, ai_service, generation_result):
    ai_service.generate_flashcards.return_value = (
        generation_result().model_copy(update={"flashcards": '[{"question":"Q1","answer":"A1"}]'}), None
    )

    outcome = await study.generate("Q topic", num_flashcards=3, num_quiz_questions=0)

    assert outcome.status == "replaced"
    assert outcome.pending is None
    assert [(c.question, c.answer) for c in study.store.flashcards] == [("Q1", "A1")]
    assert study.quiz.mode == QuizMode.EMPTY
    assert study.active_view == View.FLASHCARDS
    assert study.available_views() == [View.GENERATE, View.FLASHCARDS]


@pytest.mark.asyncio
async def test_generate_request_fields(study, ai_service):
    await study.generate("  cells  ", num_flashcards=4, num_quiz_questions=2, difficulty="Hard")

    request = ai_service.generate_flashcards.call_args.args[0]
    assert request.prompt == "cells"
    assert request.num_flashcards == 4
    assert request.num_quiz_questions == 2
    assert request.difficulty.value == "Hard"
    assert request.pdf_text is None
    assert request.web_search_context is None


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [
    {"prompt": "   "},
    {"prompt": "x", "num_flashcards": 0},
    {"prompt": "x", "num_flashcards": settings.MAX_ITEMS_PER_REQUEST + 1},
    {"prompt": "x", "num_quiz_questions": -1},
    {"prompt": "x", "num_flashcards": "5"},
    {"prompt": "x", "difficulty": "Impossible"},
])
async def test_invalid_input_makes_no_call(study, ai_service, kwargs):
    outcome = await study.generate(**kwargs)
    assert outcome.status == "invalid_input"
    ai_service.generate_flashcards.assert_not_called()


@pytest.mark.asyncio
async def test_generate_over_existing_session_needs_confirmation(study, ai_service, generation_result, sample_flashcards):
    study.store.replace(sample_flashcards)
    study.refresh()
    ai_service.generate_flashcards.return_value = (generation_result(
        flashcards=[{"question": "New", "answer": "Card"}],
        quiz_questions=[{"question": "Q", "options": ["a", "b"], "correctAnswer": "b"}],
    ), None)

    outcome = await study.generate("new topic", num_flashcards=1, num_quiz_questions=1)

    assert outcome.status == "confirmation_required"
    assert study.store.flashcards == sample_flashcards
    assert study.quiz.mode == QuizMode.AUTO_CONFIG

    assert study.confirm(outcome.pending.token) is True
    assert [c.question for c in study.store.flashcards] == ["New"]
    assert study.quiz.mode == QuizMode.AI_DIRECT
    assert study.deck.current_card.question == "New"


@pytest.mark.asyncio
async def test_parse_error_leaves_session(study, ai_service, generation_result, sample_flashcards):
    study.store.replace(sample_flashcards)
    ai_service.generate_flashcards.return_value = (
        generation_result().model_copy(update={"flashcards": "not json at all"}), None
    )

    outcome = await study.generate("topic")

    assert outcome.status == "parse_error"
    assert outcome.flashcard_raw == "not json at all"
    assert outcome.flashcard_error
    assert study.store.flashcards == sample_flashcards
    assert study.store.pending is None


@pytest.mark.asyncio
async def test_partial_parse_still_replaces(study, ai_service, generation_result):
    ai_service.generate_flashcards.return_value = (generation_result(
        flashcards=[{"question": "Q", "answer": "A"}, {"question": "R", "answer": "B"}],
    ).model_copy(update={"quiz_questions": "{broken"}), None)

    outcome = await study.generate("topic", num_quiz_questions=2)

    assert outcome.status == "replaced"
    assert outcome.quiz_error
    assert len(study.store.flashcards) == 2
    assert study.quiz.mode == QuizMode.AUTO_CONFIG


@pytest.mark.asyncio
async def test_no_content(study, ai_service):
    outcome = await study.generate("topic")
    assert outcome.status == "no_content"
    assert study.store.is_empty()
    assert study.active_view == View.GENERATE


@pytest.mark.asyncio
async def test_service_error(study, ai_service):
    ai_service.generate_flashcards.return_value = (None, "API error: 503")
    outcome = await study.generate("topic")
    assert outcome.status == "service_error"
    assert outcome.message == "API error: 503"
    assert study.store.is_empty()


@pytest.mark.asyncio
async def test_web_search_context(study, ai_service, search):
    search.return_value = "Topic: Cells\nSummary: Basic unit of life"
    outcome = await study.generate("cells", use_web_search=True)

    search.assert_awaited_once_with("cells")
    assert ai_service.generate_flashcards.call_args.args[0].web_search_context.startswith("Topic: Cells")
    assert outcome.web_search_context


@pytest.mark.asyncio
async def test_web_search_error_is_a_warning(study, ai_service, search):
    search.return_value = "Error: Failed to fetch from DuckDuckGo (status 500)."
    outcome = await study.generate("cells", use_web_search=True)

    assert outcome.warnings == ["Error: Failed to fetch from DuckDuckGo (status 500)."]
    assert ai_service.generate_flashcards.call_args.args[0].web_search_context is None


@pytest.mark.asyncio
async def test_pdf_context_is_used(study, ai_service):
    result = await study.load_pdf(_pdf_bytes(), "bio.pdf", "application/pdf")
    assert result.success
    assert "Photosynthesis" in study.pdf.text

    await study.generate("")

    request = ai_service.generate_flashcards.call_args.args[0]
    assert request.prompt == "Using content from PDF: bio.pdf. Focus on its key topics."
    assert "Photosynthesis" in request.pdf_text


@pytest.mark.asyncio
async def test_pdf_without_text_is_allowed_but_not_sent(study, ai_service):
    result = await study.load_pdf(_pdf_bytes(""), "scan.pdf", "application/pdf")
    assert result.success
    assert "No text content found" in result.message

    outcome = await study.generate("")
    assert outcome.status == "no_content"
    assert ai_service.generate_flashcards.call_args.args[0].pdf_text is None


@pytest.mark.asyncio
async def test_pdf_rejections(study):
    result = await study.load_pdf(b"hello", "notes.txt", "text/plain")
    assert result.rejected and not result.success

    too_big = b"%PDF" + b"0" * (settings.FILE_SIZE_LIMIT_MB * 1024 * 1024)
    result = await study.load_pdf(too_big, "big.pdf", "application/pdf")
    assert result.rejected
    assert study.pdf is None


@pytest.mark.asyncio
async def test_failed_pdf_keeps_previous_one(study):
    await study.load_pdf(_pdf_bytes(), "good.pdf", "application/pdf")

    result = await study.load_pdf(b"garbage", "bad.pdf", "application/pdf")

    assert not result.success and not result.rejected
    assert "Using previous PDF: good.pdf" in result.message
    assert study.pdf.filename == "good.pdf"

    study.clear_pdf()
    assert study.pdf is None


@pytest.mark.asyncio
async def test_expand_uses_last_topic(study, ai_service, generation_result):
    ai_service.generate_flashcards.return_value = (generation_result(
        flashcards=[{"question": "Q1", "answer": "A1"}, {"question": "Q2", "answer": "A2"}],
    ), None)
    await study.generate("volcanoes")

    ai_service.generate_flashcards.return_value = (generation_result(
        flashcards=[{"question": "Q3", "answer": "A3"}],
    ), None)
    result = await study.expand("flashcards", 1)

    assert result.status == "added"
    assert "volcanoes" in ai_service.generate_flashcards.call_args.args[0].prompt
    assert [c.question for c in study.deck.state.cards] == ["Q1", "Q2", "Q3"]


def test_import_and_export(study, sample_flashcards, sample_quiz_questions):
    document = json.dumps({
        "flashcards": [c.model_dump() for c in sample_flashcards],
        "quizQuestions": [q.model_dump(by_alias=True) for q in sample_quiz_questions],
    })

    outcome = study.import_file(document.encode(), "deck.json", "application/json")

    assert outcome.status == "replaced"
    assert study.store.flashcards == sample_flashcards
    assert study.quiz.mode == QuizMode.AI_DIRECT
    assert json.loads(study.export()) == json.loads(document)


def test_import_over_existing_session(study, sample_flashcards):
    study.store.replace(sample_flashcards)
    outcome = study.import_file(b'{"flashcards": []}', "empty.json", None)
    assert outcome.status == "confirmation_required"
    assert "Importing data" in outcome.message


def test_import_rejections(study):
    assert study.import_file(b"{}", "notes.txt", "text/plain").status == "invalid_input"
    outcome = study.import_file(b'{"flashcards": "nope"}', "x.json", "application/json")
    assert outcome.status == "invalid_input"
    assert study.store.is_empty()


def test_export_empty_session(study):
    with pytest.raises(InputError, match="There is no data to export."):
        study.export()


def test_views(study, sample_flashcards, sample_quiz_questions):
    assert study.available_views() == [View.GENERATE]
    assert study.navigate(View.QUIZ) is False

    study.store.replace(sample_flashcards[:1], sample_quiz_questions)
    assert study.available_views() == [View.GENERATE, View.FLASHCARDS, View.QUIZ]
    assert study.navigate("quiz") is True
    assert study.active_view == View.QUIZ

    study.clear()
    assert study.active_view == View.GENERATE
    assert study.quiz.mode == QuizMode.EMPTY


@pytest.mark.asyncio
async def test_speech(study, ai_service):
    with pytest.raises(InputError, match="No audio recorded."):
        await study.transcribe(b"", "audio/webm")
    ai_service.transcribe.assert_not_called()

    ai_service.transcribe.return_value = ("hello world", None)
    text, error = await study.transcribe(b"\x1aE\xdf\xa3", "audio/webm")
    assert text == "hello world" and error is None
    assert ai_service.transcribe.call_args.args[0].startswith("data:audio/webm;base64,")

    audio, error = await study.speak("Paris")
    assert audio.startswith("data:audio/wav;base64,")


def test_import_rejects_unanswerable_quiz_question(study):
    document = json.dumps({
        "flashcards": [{"id": "fc-1", "question": "Q", "answer": "A"}],
        "quizQuestions": [{"id": "qz-1", "question": "Empty?", "options": [], "correctAnswer": "X"}],
    })
    outcome = study.import_file(document.encode(), "deck.json", "application/json")
    assert outcome.status == "invalid_input"
    assert study.store.is_empty()
    assert study.quiz.mode == QuizMode.EMPTY
