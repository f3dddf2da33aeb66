"""
Pytest configuration and fixtures for FlashZen tests.
"""
import json
import os
import random
import sys
from unittest.mock import AsyncMock

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

from models.flashcard import Flashcard, QuizQuestion  # noqa: E402
from models.generation import GenerationResult  # noqa: E402
from services.quiz_service import QuizEngine  # noqa: E402
from services.study_service import StudyService  # noqa: E402


@pytest.fixture
def sample_flashcards():
    """Five flashcards with distinct answers"""
    return [
        Flashcard(id="fc-1", question="Capital of France?", answer="Paris"),
        Flashcard(id="fc-2", question="Capital of Japan?", answer="Tokyo"),
        Flashcard(id="fc-3", question="Capital of Italy?", answer="Rome"),
        Flashcard(id="fc-4", question="Capital of Spain?", answer="Madrid"),
        Flashcard(id="fc-5", question="Capital of Egypt?", answer="Cairo"),
    ]


@pytest.fixture
def sample_quiz_questions():
    """AI-authored quiz questions"""
    return [
        QuizQuestion(id="qz-1", question="What is 2+2?", options=["3", "4", "5"], correctAnswer="4"),
        QuizQuestion(
            id="qz-2",
            question="Largest planet?",
            options=["Earth", "Mars", "Jupiter", "Saturn"],
            correctAnswer="Jupiter",
        ),
    ]


@pytest.fixture
def quiz_engine():
    return QuizEngine(rng=random.Random(42))


def _generation_result(flashcards=None, quiz_questions=None) -> GenerationResult:
    return GenerationResult(
        flashcards=json.dumps(flashcards or []),
        quiz_questions=json.dumps(quiz_questions) if quiz_questions is not None else None,
    )


@pytest.fixture
def generation_result():
    """Build a generation service result from plain dicts."""
    return _generation_result


@pytest.fixture
def ai_service():
    """Generation/speech collaborator returning nothing by default"""
    service = AsyncMock()
    service.generate_flashcards.return_value = (_generation_result(), None)
    service.transcribe.return_value = ("", None)
    service.synthesize_speech.return_value = ("data:audio/wav;base64,UklGRg==", None)
    return service


@pytest.fixture
def search():
    return AsyncMock(return_value=None)


@pytest.fixture
def study(ai_service, search):
    return StudyService(ai_service=ai_service, search=search, quiz_engine=QuizEngine(rng=random.Random(7)))
