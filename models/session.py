"""
Runtime state shapes for the study session, the quiz attempt and the deck.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from models.flashcard import Flashcard, QuizDisplayQuestion, QuizQuestion


class QuizMode(str, Enum):
    AI_DIRECT = "ai_direct"
    AUTO_CONFIG = "auto_config"
    AUTO_ACTIVE = "auto_active"
    EMPTY = "empty"


class ReplaceOrigin(str, Enum):
    GENERATE = "generate"
    IMPORT = "import"


class View(str, Enum):
    GENERATE = "generate"
    FLASHCARDS = "flashcards"
    QUIZ = "quiz"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"
    EXPERT = "Expert"


class ItemKind(str, Enum):
    FLASHCARDS = "flashcards"
    QUIZ = "quiz"


@dataclass
class PendingReplace:
    """A replace request waiting for the user to confirm the overwrite."""
    token: str
    origin: ReplaceOrigin
    flashcards: List[Flashcard]
    quiz_questions: List[QuizQuestion]
    lost_flashcards: int
    lost_quiz_questions: int
    title: str
    description: str


@dataclass
class QuizRuntimeState:
    """State of one quiz attempt."""
    mode: QuizMode = QuizMode.EMPTY
    questions: List[QuizDisplayQuestion] = field(default_factory=list)
    current_index: int = 0
    selected_answer: Optional[str] = None
    answered: bool = False
    score: int = 0
    completed: bool = False


@dataclass
class DeckState:
    """Browsing position over the flashcards."""
    cards: List[Flashcard] = field(default_factory=list)
    current_index: int = 0
    is_flipped: bool = False
