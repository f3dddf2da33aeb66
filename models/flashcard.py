from typing import List
from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator


class Flashcard(BaseModel):
    """A question/answer pair for recall study."""
    id: StrictStr = Field(..., description="Unique opaque identifier", examples=["fc-1718000000000-0"])
    question: StrictStr = Field(..., description="Front of the card", examples=["What is the capital of France?"])
    answer: StrictStr = Field(..., description="Back of the card", examples=["Paris"])


class QuizQuestion(BaseModel):
    """A multiple-choice question with exactly one correct option."""
    model_config = ConfigDict(populate_by_name=True)

    id: StrictStr = Field(..., description="Unique opaque identifier", examples=["qz-1718000000000-0"])
    question: StrictStr = Field(..., description="The question text")
    options: List[StrictStr] = Field(..., description="Answer options in display order")
    correct_answer: StrictStr = Field(..., alias="correctAnswer", description="Must be one of the options")

    @model_validator(mode="after")
    def check_answerable(self):
        if len(self.options) < 2:
            raise ValueError("a quiz question needs at least two options")
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of the options")
        return self


class QuizDisplayQuestion(QuizQuestion):
    """
    A quiz question as presented during one quiz attempt.

    Options are a shuffled permutation fixed for the attempt; a new
    permutation is only drawn on restart.
    """


class ExportedData(BaseModel):
    """Import/export file format. Only the camelCase keys are accepted."""
    model_config = ConfigDict(extra="forbid")

    flashcards: List[Flashcard] = Field(..., description="Flashcards in display order")
    quiz_questions: List[QuizQuestion] = Field(
        default_factory=list, alias="quizQuestions", description="AI-authored quiz questions"
    )
