import json
from typing import List, Union

from pydantic import ValidationError

from models.flashcard import ExportedData, Flashcard, QuizQuestion


class ImportValidationError(Exception):
    """The import file is rejected as a whole."""
    pass


def export_session(flashcards: List[Flashcard], quiz_questions: List[QuizQuestion]) -> str:
    """Serializes the session in the import/export file format."""
    data = ExportedData(flashcards=flashcards, quizQuestions=quiz_questions)
    return json.dumps(data.model_dump(by_alias=True), indent=2, ensure_ascii=False)


def _describe(error: ValidationError) -> str:
    problems = []
    for err in error.errors()[:5]:
        location = ".".join(str(part) for part in err["loc"]) or "document"
        problems.append(f"{location}: {err['msg']}")
    more = error.error_count() - len(problems)
    if more > 0:
        problems.append(f"... and {more} more")
    return "; ".join(problems)


def parse_import(content: Union[str, bytes]) -> ExportedData:
    """
    Validates an exported file. Any violation rejects the entire file.

    Raises:
        ImportValidationError: with a human-readable reason
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ImportValidationError("Failed to read file content: not UTF-8 text.")

    try:
        document = json.loads(content)
    except json.JSONDecodeError as e:
        raise ImportValidationError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})")

    if not isinstance(document, dict):
        raise ImportValidationError("Invalid JSON format: expected an object with a \"flashcards\" array.")
    if not isinstance(document.get("flashcards"), list):
        raise ImportValidationError('Invalid JSON format: "flashcards" array is missing or not an array.')
    if "quizQuestions" in document and not isinstance(document["quizQuestions"], list):
        raise ImportValidationError('Invalid JSON format: "quizQuestions" must be an array.')

    try:
        return ExportedData.model_validate(document)
    except ValidationError as e:
        raise ImportValidationError(f"Invalid data structure within JSON file: {_describe(e)}")
