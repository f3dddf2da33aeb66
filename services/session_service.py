import uuid
from typing import Callable, List, Optional

from models.flashcard import ExportedData, Flashcard, QuizQuestion
from models.session import PendingReplace, ReplaceOrigin, View
from core.logger import logger

NavigationCallback = Callable[[View], None]


class SessionStore:
    """
    Owns the canonical flashcard and quiz question lists of the study session.

    All mutation goes through replace/append/clear. Replacing a non-empty
    session requires an explicit confirmation via request_replace.
    """

    def __init__(self, on_navigate: Optional[NavigationCallback] = None):
        self._flashcards: List[Flashcard] = []
        self._quiz_questions: List[QuizQuestion] = []
        self._pending: Optional[PendingReplace] = None
        self._on_navigate = on_navigate
        # Bumped on replace/clear; appends keep it so readers can tell growth from replacement
        self.epoch = 0

    @property
    def flashcards(self) -> List[Flashcard]:
        return list(self._flashcards)

    @property
    def quiz_questions(self) -> List[QuizQuestion]:
        return list(self._quiz_questions)

    @property
    def pending(self) -> Optional[PendingReplace]:
        return self._pending

    def is_empty(self) -> bool:
        return not self._flashcards and not self._quiz_questions

    def _navigate(self, view: View):
        if self._on_navigate:
            self._on_navigate(view)

    def replace(self, new_flashcards: List[Flashcard], new_quiz_questions: Optional[List[QuizQuestion]] = None):
        """Overwrites the session unconditionally."""
        self._flashcards = list(new_flashcards)
        self._quiz_questions = list(new_quiz_questions or [])
        self.epoch += 1
        logger.info(
            "Session replaced",
            flashcards=len(self._flashcards),
            quiz_questions=len(self._quiz_questions),
            epoch=self.epoch,
        )
        self._navigate(View.FLASHCARDS if self._flashcards else View.GENERATE)

    def request_replace(
        self,
        new_flashcards: List[Flashcard],
        new_quiz_questions: Optional[List[QuizQuestion]] = None,
        origin: ReplaceOrigin = ReplaceOrigin.GENERATE,
    ) -> Optional[PendingReplace]:
        """
        Replace the session, asking for confirmation first if it has content.

        Returns:
            None when the session was replaced right away, otherwise the
            pending confirmation. A newer request supersedes an older one.
        """
        if self.is_empty():
            self.replace(new_flashcards, new_quiz_questions)
            return None

        lost_quiz = len(self._quiz_questions)
        action = "Generating new content" if origin == ReplaceOrigin.GENERATE else "Importing data"
        description = (
            f"You have existing flashcards{' and quiz questions' if lost_quiz > 0 else ''}. "
            f"{action} will replace your current set. Are you sure you want to proceed?"
        )

        if self._pending:
            logger.info("Pending replace superseded", token=self._pending.token)

        self._pending = PendingReplace(
            token=uuid.uuid4().hex,
            origin=ReplaceOrigin(origin),
            flashcards=list(new_flashcards),
            quiz_questions=list(new_quiz_questions or []),
            lost_flashcards=len(self._flashcards),
            lost_quiz_questions=lost_quiz,
            title="Overwrite Existing Content?",
            description=description,
        )
        logger.info(
            "Replace awaiting confirmation",
            token=self._pending.token,
            origin=self._pending.origin.value,
            lost_flashcards=self._pending.lost_flashcards,
            lost_quiz_questions=lost_quiz,
        )
        return self._pending

    def confirm_replace(self, token: str) -> bool:
        """Applies the pending replace if token is the most recent request."""
        pending = self._pending
        if not pending or pending.token != token:
            logger.warning("Stale or unknown confirmation ignored", token=token)
            return False
        self._pending = None
        self.replace(pending.flashcards, pending.quiz_questions)
        return True

    def cancel_replace(self, token: Optional[str] = None) -> bool:
        pending = self._pending
        if not pending or (token is not None and pending.token != token):
            return False
        self._pending = None
        logger.info("Pending replace cancelled", token=pending.token)
        return True

    def append(self, new_flashcards: List[Flashcard], new_quiz_questions: Optional[List[QuizQuestion]] = None):
        """Adds items after the existing ones, in order. Never asks for confirmation."""
        new_quiz_questions = list(new_quiz_questions or [])
        self._flashcards.extend(new_flashcards)
        self._quiz_questions.extend(new_quiz_questions)
        logger.info(
            "Session appended",
            added_flashcards=len(new_flashcards),
            added_quiz_questions=len(new_quiz_questions),
            flashcards=len(self._flashcards),
            quiz_questions=len(self._quiz_questions),
        )
        if new_flashcards:
            self._navigate(View.FLASHCARDS)

    def clear(self):
        """Empties the session. Only reachable through an explicit user action."""
        self._flashcards = []
        self._quiz_questions = []
        self._pending = None
        self.epoch += 1
        logger.info("Session cleared", epoch=self.epoch)
        self._navigate(View.GENERATE)

    def snapshot(self) -> ExportedData:
        return ExportedData(flashcards=self.flashcards, quizQuestions=self.quiz_questions)
