import random
from typing import List, Optional, Tuple

from models.flashcard import Flashcard, QuizDisplayQuestion, QuizQuestion
from models.session import QuizMode, QuizRuntimeState
from core.config import settings
from core.logger import logger


class QuizEngine:
    """
    Derives a playable quiz from the session and runs one attempt at a time.

    The engine only reads the session lists handed to recompute(); it never
    mutates them.
    """

    MIN_AUTO_FLASHCARDS = 2
    MAX_DISTRACTORS = 3

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        if rng is None:
            rng = random.Random(seed if seed is not None else settings.QUIZ_SHUFFLE_SEED)
        self._rng = rng
        self.state = QuizRuntimeState()
        self._flashcards: List[Flashcard] = []
        self._quiz_pool: List[QuizQuestion] = []
        self._epoch: Optional[int] = None
        self._source_card_ids: List[str] = []

    # --- read-only views -------------------------------------------------

    @property
    def mode(self) -> QuizMode:
        return self.state.mode

    @property
    def questions(self) -> List[QuizDisplayQuestion]:
        return list(self.state.questions)

    @property
    def current_question(self) -> Optional[QuizDisplayQuestion]:
        if self.state.mode not in (QuizMode.AI_DIRECT, QuizMode.AUTO_ACTIVE):
            return None
        if not 0 <= self.state.current_index < len(self.state.questions):
            return None
        return self.state.questions[self.state.current_index]

    @property
    def pending_questions(self) -> int:
        """AI questions added to the pool that show up after a restart."""
        if self.state.mode != QuizMode.AI_DIRECT:
            return 0
        shown = {q.id for q in self.state.questions}
        return sum(1 for q in self._quiz_pool if q.id not in shown)

    @property
    def max_auto_questions(self) -> int:
        return len(self._flashcards)

    # --- mode selection --------------------------------------------------

    def _target_mode(self) -> QuizMode:
        if self._quiz_pool:
            return QuizMode.AI_DIRECT
        if len(self._flashcards) >= self.MIN_AUTO_FLASHCARDS:
            return QuizMode.AUTO_CONFIG
        return QuizMode.EMPTY

    def _shuffled(self, items: list) -> list:
        items = list(items)
        self._rng.shuffle(items)
        return items

    def _display(self, question: QuizQuestion) -> QuizDisplayQuestion:
        return QuizDisplayQuestion(
            id=question.id,
            question=question.question,
            options=self._shuffled(question.options),
            correct_answer=question.correct_answer,
        )

    def _reset(self, mode: QuizMode, questions: Optional[List[QuizDisplayQuestion]] = None):
        self.state = QuizRuntimeState(mode=mode, questions=list(questions or []))

    def _initialize(self):
        mode = self._target_mode()
        questions = [self._display(q) for q in self._quiz_pool] if mode == QuizMode.AI_DIRECT else []
        self._source_card_ids = []
        self._reset(mode, questions)
        logger.debug("Quiz initialized", mode=mode.value, questions=len(questions))

    def _attempt_still_valid(self, epoch: Optional[int]) -> bool:
        if self._epoch is not None and epoch is not None and epoch != self._epoch:
            return False

        if self.state.mode == QuizMode.AI_DIRECT:
            pool_ids = {q.id for q in self._quiz_pool}
            return bool(self.state.questions) and all(q.id in pool_ids for q in self.state.questions)
        if self.state.mode == QuizMode.AUTO_ACTIVE:
            card_ids = {c.id for c in self._flashcards}
            return all(card_id in card_ids for card_id in self._source_card_ids)
        return False

    def recompute(
        self,
        flashcards: List[Flashcard],
        quiz_questions: List[QuizQuestion],
        epoch: Optional[int] = None,
    ) -> QuizMode:
        """
        Re-derive the quiz after the session changed.

        An attempt under way survives when the session only grew: newly
        appended items join the pool and appear on the next restart.
        Anything else (a replace, a clear, removed items) starts over.
        """
        self._flashcards = list(flashcards)
        self._quiz_pool = list(quiz_questions)

        if self._attempt_still_valid(epoch):
            self._epoch = epoch
            logger.debug("Quiz pool updated", mode=self.state.mode.value, pending=self.pending_questions)
            return self.state.mode

        self._epoch = epoch
        if self.state.mode == QuizMode.AUTO_CONFIG and self._target_mode() == QuizMode.AUTO_CONFIG:
            # Still configuring; nothing to rebuild
            return self.state.mode

        self._initialize()
        return self.state.mode

    # --- derived quiz ----------------------------------------------------

    def _build_options(self, card: Flashcard, pool: List[str], position: int) -> List[str]:
        distractors: List[str] = []
        for answer in self._shuffled(pool):
            if answer != card.answer and answer not in distractors:
                distractors.append(answer)
            if len(distractors) == self.MAX_DISTRACTORS:
                break

        counter = 1
        while len(distractors) < self.MAX_DISTRACTORS:
            placeholder = f"Option {counter} for Q{position}"
            counter += 1
            if placeholder != card.answer and placeholder not in distractors:
                distractors.append(placeholder)

        return self._shuffled([card.answer] + distractors)

    def synthesize_questions(self, flashcards: List[Flashcard], count: int) -> List[QuizDisplayQuestion]:
        """
        Build multiple-choice questions from flashcards.

        The other cards' answers serve as distractors; placeholders fill in
        when there are not enough distinct ones, so every question has four
        options including the card's answer.
        """
        if len(flashcards) < self.MIN_AUTO_FLASHCARDS or count < 1:
            return []

        indexed = list(enumerate(flashcards))
        chosen = self._shuffled(indexed)[: min(count, len(flashcards))]

        questions = []
        for idx, (source_index, card) in enumerate(chosen):
            pool = [other.answer for i, other in indexed if i != source_index]
            options = self._build_options(card, pool, idx + 1)
            if card.answer not in options:
                continue
            questions.append(QuizDisplayQuestion(
                id=f"{card.id}_quiz_{idx}",
                question=card.question,
                options=options,
                correct_answer=card.answer,
            ))
        return questions

    def start_auto_quiz(self, count) -> Tuple[List[QuizDisplayQuestion], Optional[str]]:
        """
        Start a quiz derived from flashcards with `count` questions.

        Returns:
            (questions, error) - error is a user-facing message when rejected
        """
        if self.state.mode != QuizMode.AUTO_CONFIG:
            return [], "A quiz from flashcards can only be started while configuring one."

        total = len(self._flashcards)
        try:
            num = int(count)
        except (TypeError, ValueError):
            num = 0
        if isinstance(count, bool) or num < 1 or num > total:
            return [], f"Please enter a number between 1 and {total}."

        questions = self.synthesize_questions(self._flashcards, num)
        if not questions:
            return [], "Could not generate quiz questions from flashcards. Ensure you have enough distinct flashcards."

        questions = self._shuffled(questions)
        self._source_card_ids = [q.id.rsplit("_quiz_", 1)[0] for q in questions]
        self._reset(QuizMode.AUTO_ACTIVE, questions)
        logger.info("Auto quiz started", questions=len(questions), flashcards=total)
        return self.questions, None

    # --- attempt transitions ---------------------------------------------

    def select_answer(self, option: str) -> bool:
        """Score the current question. The first answer wins."""
        question = self.current_question
        if question is None or self.state.completed or self.state.answered:
            return False
        if option not in question.options:
            logger.warning("Answer is not an option of the current question", question_id=question.id)
            return False

        self.state.selected_answer = option
        self.state.answered = True
        if option == question.correct_answer:
            self.state.score += 1
        return True

    def advance(self) -> bool:
        """Move to the next question, or complete the attempt after the last one."""
        if self.current_question is None or self.state.completed or not self.state.answered:
            return False

        if self.state.current_index >= len(self.state.questions) - 1:
            self.state.completed = True
            logger.info("Quiz completed", score=self.state.score, total=len(self.state.questions))
        else:
            self.state.current_index += 1
            self.state.selected_answer = None
            self.state.answered = False
        return True

    def restart(self) -> QuizMode:
        """
        AI quizzes reshuffle options over the current pool. Derived quizzes go
        back to configuration because the flashcards may have changed.
        """
        if self.state.mode == QuizMode.AI_DIRECT and self._quiz_pool:
            self._reset(QuizMode.AI_DIRECT, [self._display(q) for q in self._quiz_pool])
        else:
            self._initialize()
        logger.info("Quiz restarted", mode=self.state.mode.value, questions=len(self.state.questions))
        return self.state.mode
