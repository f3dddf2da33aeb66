from typing import Optional
from pydantic import BaseModel, Field

from models.session import Difficulty


class GenerationRequest(BaseModel):
    """Input of the generation service."""
    prompt: str = Field(..., description="Topic or instruction from the user")
    pdf_text: Optional[str] = Field(None, description="Text extracted from an uploaded PDF")
    web_search_context: Optional[str] = Field(None, description="Context from a web search")
    num_flashcards: int = Field(10, ge=0, description="Desired number of flashcards")
    num_quiz_questions: int = Field(0, ge=0, description="Desired number of quiz questions; 0 means none")
    existing_flashcards: Optional[str] = Field(None, description="JSON array of flashcards to avoid repeating")
    existing_quiz_questions: Optional[str] = Field(None, description="JSON array of quiz questions to avoid repeating")
    difficulty: Optional[Difficulty] = None


class GenerationResult(BaseModel):
    """
    Output of the generation service. Each kind is a JSON-encoded array;
    "[]" when the kind was requested but nothing came back.
    """
    flashcards: str = "[]"
    quiz_questions: Optional[str] = None
