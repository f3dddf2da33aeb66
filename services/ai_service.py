import json
from typing import Any, Optional, Tuple

import httpx

from core.config import settings
from core.logger import logger
from models.generation import GenerationRequest, GenerationResult
from utils.data_uri import DataUriError, decode_data_uri, encode_data_uri
from utils.parser import strip_code_fences

SYSTEM_PROMPT = """You are an expert flashcard and quiz generation assistant.

Your final output MUST be a JSON object.
1. It MUST have a key "flashcards" whose value is a STRINGIFIED JSON array of objects with a "question" and an "answer" field,
   e.g. "[{\\"question\\": \\"What is the capital of France?\\", \\"answer\\": \\"Paris\\"}]".
2. If quiz questions are requested it MUST have a key "quizQuestions" whose value is a STRINGIFIED JSON array of objects with
   "question" (string), "options" (array of 3-4 strings) and "correctAnswer" (string, one of the options),
   e.g. "[{\\"question\\": \\"Which of these is a primary color?\\", \\"options\\": [\\"Green\\", \\"Blue\\", \\"Orange\\"], \\"correctAnswer\\": \\"Blue\\"}]".
   If none were requested or none could be generated, use "[]".
Return ONLY the JSON object, nothing else."""


def build_generation_prompt(request: GenerationRequest) -> str:
    """Renders the user message for a generation request."""
    parts = [f'User\'s primary query: "{request.prompt}"']

    if request.pdf_text:
        parts.append(
            "The user has uploaded a PDF document. Please prioritize the content from this PDF for generation.\n"
            f"--- START PDF CONTENT ---\n{request.pdf_text}\n--- END PDF CONTENT ---"
        )
    if request.web_search_context:
        parts.append(
            "Additional context from a web search has been provided. Use this to supplement your knowledge.\n"
            f"--- START WEB SEARCH CONTEXT ---\n{request.web_search_context}\n--- END WEB SEARCH CONTEXT ---"
        )
    if request.existing_flashcards or request.existing_quiz_questions:
        parts.append(
            "The user already has the following items. Every new item MUST be different from all of them; "
            "do not repeat or rephrase existing questions.\n"
            f"Existing flashcards: {request.existing_flashcards or '[]'}\n"
            f"Existing quiz questions: {request.existing_quiz_questions or '[]'}"
        )
    if request.difficulty:
        parts.append(f"Target difficulty: {request.difficulty.value}.")

    if request.num_flashcards > 0:
        parts.append(f"1. Flashcards: generate approximately {request.num_flashcards} flashcards.")
    else:
        parts.append('1. Flashcards: do not generate any flashcards; set "flashcards" to "[]".')

    if request.num_quiz_questions > 0:
        parts.append(
            f"2. Quiz Questions: generate approximately {request.num_quiz_questions} multiple-choice quiz questions "
            "that test understanding of the material. They should NOT be direct copies of the flashcards."
        )
    else:
        parts.append('2. Quiz Questions: none requested; omit "quizQuestions".')

    return "\n\n".join(parts)


def _as_json_array(value: Any) -> Optional[str]:
    """Generation output keeps each kind as a JSON string; salvage lists sent inline."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return None


class AIService:
    """Service for AI-powered flashcard generation and speech using the Groq API."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.GROQ_API_KEY
        self.model = settings.GROQ_MODEL
        self.base_url = settings.GROQ_BASE_URL.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def _log_rate_limits(self, headers: httpx.Headers):
        """Extract and log Groq rate limit information."""
        remaining_requests = headers.get("x-ratelimit-remaining-requests")
        remaining_tokens = headers.get("x-ratelimit-remaining-tokens")

        if remaining_requests or remaining_tokens:
            logger.info(
                "Groq rate limits",
                rem_req=remaining_requests,
                rem_tok=remaining_tokens,
                reset_req=headers.get("x-ratelimit-reset-requests"),
                reset_tok=headers.get("x-ratelimit-reset-tokens")
            )

    async def generate_flashcards(self, request: GenerationRequest) -> Tuple[Optional[GenerationResult], Optional[str]]:
        """
        Generate flashcards and optionally quiz questions.

        Returns:
            (result, error) - exactly one of them is None
        """
        if not self.api_key:
            return None, "GROQ_API_KEY is not configured"

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": SYSTEM_PROMPT},
                            {"role": "user", "content": build_generation_prompt(request)},
                        ],
                        "response_format": {"type": "json_object"},
                        "temperature": 0.7,
                        "max_completion_tokens": 8192,
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Groq request failed", error=str(e))
            return None, f"Generation service unreachable: {e}"

        self._log_rate_limits(response.headers)

        if response.status_code != 200:
            logger.error("Groq API error", status=response.status_code, error=response.text[:500])
            return None, f"API error: {response.status_code}"

        try:
            content = response.json()["choices"][0]["message"]["content"]
            output = json.loads(strip_code_fences(content or ""))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Malformed generation response", error=str(e), body=response.text[:500])
            return None, "The AI returned a malformed response."

        if not isinstance(output, dict):
            logger.error("Generation output is not an object", output_type=type(output).__name__)
            return None, "The AI returned a malformed response."

        flashcards = _as_json_array(output.get("flashcards"))
        if flashcards is None:
            logger.warning("LLM did not produce the expected 'flashcards' string output")
            flashcards = "[]"

        quiz_questions = _as_json_array(output.get("quizQuestions"))
        if quiz_questions is None and request.num_quiz_questions > 0:
            quiz_questions = "[]"

        logger.info(
            "AI content generated",
            prompt=request.prompt[:80],
            num_flashcards=request.num_flashcards,
            num_quiz_questions=request.num_quiz_questions,
        )
        return GenerationResult(flashcards=flashcards, quiz_questions=quiz_questions), None

    async def transcribe(self, audio_data_uri: str) -> Tuple[str, Optional[str]]:
        """
        Transcribe recorded audio. An empty transcript means no speech was detected.
        """
        if not self.api_key:
            return "", "GROQ_API_KEY is not configured"

        try:
            mime_type, audio = decode_data_uri(audio_data_uri)
        except DataUriError as e:
            return "", str(e)
        if not audio:
            return "", "No audio recorded."

        extension = mime_type.split("/")[-1].split(";")[0] or "webm"
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/audio/transcriptions",
                    data={"model": settings.GROQ_TRANSCRIPTION_MODEL, "response_format": "json"},
                    files={"file": (f"recording.{extension}", audio, mime_type)},
                )
        except httpx.HTTPError as e:
            logger.error("Transcription request failed", error=str(e))
            return "", f"Transcription service unreachable: {e}"

        self._log_rate_limits(response.headers)
        if response.status_code != 200:
            logger.error("Transcription API error", status=response.status_code, error=response.text[:500])
            return "", f"API error: {response.status_code}"

        try:
            text = response.json().get("text") or ""
        except ValueError:
            return "", "The transcription service returned a malformed response."
        return text.strip(), None

    async def synthesize_speech(self, text: str) -> Tuple[Optional[str], Optional[str]]:
        """Convert text to speech, returned as an audio data URI."""
        if not text or not text.strip():
            return None, "Text to speak is required."
        if not self.api_key:
            return None, "GROQ_API_KEY is not configured"

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/audio/speech",
                    json={
                        "model": settings.GROQ_TTS_MODEL,
                        "voice": settings.GROQ_TTS_VOICE,
                        "input": text.strip(),
                        "response_format": "wav",
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Speech synthesis request failed", error=str(e))
            return None, f"Speech service unreachable: {e}"

        if response.status_code != 200 or not response.content:
            logger.error("Speech synthesis API error", status=response.status_code)
            return None, "Audio generation failed or returned no audio data."

        mime_type = response.headers.get("content-type", "audio/wav").split(";")[0]
        return encode_data_uri(response.content, mime_type), None
