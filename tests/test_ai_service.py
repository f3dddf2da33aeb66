import json
import unittest

import httpx

from models.generation import GenerationRequest
from models.session import Difficulty
from services.ai_service import AIService, build_generation_prompt


def _completion(content, status_code=200, headers=None):
    body = {"choices": [{"message": {"content": content}}]}
    return httpx.Response(status_code, json=body, headers=headers or {})


class TestBuildGenerationPrompt(unittest.TestCase):
    def test_sections(self):
        prompt = build_generation_prompt(GenerationRequest(
            prompt="mitosis",
            pdf_text="Cell division text",
            web_search_context="Topic: Mitosis",
            num_flashcards=5,
            num_quiz_questions=3,
            existing_flashcards='[{"question": "Old"}]',
            difficulty=Difficulty.EXPERT,
        ))
        self.assertIn('"mitosis"', prompt)
        self.assertIn("--- START PDF CONTENT ---\nCell division text", prompt)
        self.assertIn("--- START WEB SEARCH CONTEXT ---\nTopic: Mitosis", prompt)
        self.assertIn('Existing flashcards: [{"question": "Old"}]', prompt)
        self.assertIn("Target difficulty: Expert.", prompt)
        self.assertIn("approximately 5 flashcards", prompt)
        self.assertIn("approximately 3 multiple-choice quiz questions", prompt)

    def test_no_quiz_requested(self):
        prompt = build_generation_prompt(GenerationRequest(prompt="x", num_flashcards=0))
        self.assertIn('do not generate any flashcards', prompt)
        self.assertIn('none requested', prompt)
        self.assertNotIn("PDF CONTENT", prompt)


class TestAIService(unittest.IsolatedAsyncioTestCase):
    def _service(self, handler):
        self.requests = []

        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        service = AIService(transport=httpx.MockTransport(recording_handler))
        service.api_key = "test-key"
        return service

    async def test_generate_flashcards(self):
        content = json.dumps({
            "flashcards": json.dumps([{"question": "Q", "answer": "A"}]),
            "quizQuestions": json.dumps([{"question": "Q", "options": ["a", "b"], "correctAnswer": "a"}]),
        })
        service = self._service(lambda request: _completion(
            content, headers={"x-ratelimit-remaining-requests": "99"}
        ))

        result, error = await service.generate_flashcards(
            GenerationRequest(prompt="topic", num_flashcards=1, num_quiz_questions=1)
        )

        self.assertIsNone(error)
        self.assertEqual(json.loads(result.flashcards), [{"question": "Q", "answer": "A"}])
        self.assertEqual(len(json.loads(result.quiz_questions)), 1)

        sent = self.requests[0]
        self.assertEqual(sent.url.path, "/openai/v1/chat/completions")
        self.assertEqual(sent.headers["Authorization"], "Bearer test-key")
        payload = json.loads(sent.content)
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual(payload["messages"][0]["role"], "system")

    async def test_inline_arrays_and_fences_are_accepted(self):
        content = "```json\n" + json.dumps({"flashcards": [{"question": "Q", "answer": "A"}]}) + "\n```"
        service = self._service(lambda request: _completion(content))

        result, error = await service.generate_flashcards(GenerationRequest(prompt="t", num_quiz_questions=2))

        self.assertIsNone(error)
        self.assertEqual(json.loads(result.flashcards)[0]["answer"], "A")
        # Requested but missing kinds come back as an empty array
        self.assertEqual(result.quiz_questions, "[]")

    async def test_quiz_not_requested_stays_absent(self):
        service = self._service(lambda request: _completion('{"flashcards": "[]"}'))
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(error)
        self.assertEqual(result.flashcards, "[]")
        self.assertIsNone(result.quiz_questions)

    async def test_missing_flashcards_key(self):
        service = self._service(lambda request: _completion('{"something": 1}'))
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(error)
        self.assertEqual(result.flashcards, "[]")

    async def test_api_error(self):
        service = self._service(lambda request: httpx.Response(429, text="rate limited"))
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(result)
        self.assertEqual(error, "API error: 429")

    async def test_malformed_content(self):
        service = self._service(lambda request: _completion("definitely not json"))
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(result)
        self.assertIn("malformed", error)

    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = self._service(handler)
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(result)
        self.assertIn("unreachable", error)

    async def test_missing_api_key(self):
        service = self._service(lambda request: _completion("{}"))
        service.api_key = ""
        result, error = await service.generate_flashcards(GenerationRequest(prompt="t"))
        self.assertIsNone(result)
        self.assertIn("GROQ_API_KEY", error)
        self.assertEqual(self.requests, [])

    async def test_transcribe(self):
        service = self._service(lambda request: httpx.Response(200, json={"text": "  hello  "}))

        text, error = await service.transcribe("data:audio/webm;base64,GkXfow==")

        self.assertIsNone(error)
        self.assertEqual(text, "hello")
        sent = self.requests[0]
        self.assertTrue(sent.url.path.endswith("/audio/transcriptions"))
        self.assertIn(b'filename="recording.webm"', sent.content)

    async def test_transcribe_empty_is_not_an_error(self):
        service = self._service(lambda request: httpx.Response(200, json={"text": ""}))
        text, error = await service.transcribe("data:audio/webm;base64,GkXfow==")
        self.assertEqual((text, error), ("", None))

    async def test_transcribe_bad_uri(self):
        service = self._service(lambda request: httpx.Response(200, json={"text": "x"}))
        text, error = await service.transcribe("not a data uri")
        self.assertEqual(text, "")
        self.assertIn("data URI", error)
        self.assertEqual(self.requests, [])

    async def test_synthesize_speech(self):
        service = self._service(lambda request: httpx.Response(
            200, content=b"RIFF1234", headers={"content-type": "audio/wav"}
        ))

        audio, error = await service.synthesize_speech("Bonjour")

        self.assertIsNone(error)
        self.assertEqual(audio, "data:audio/wav;base64,UklGRjEyMzQ=")
        self.assertEqual(json.loads(self.requests[0].content)["input"], "Bonjour")

    async def test_synthesize_failure(self):
        service = self._service(lambda request: httpx.Response(500))
        audio, error = await service.synthesize_speech("Bonjour")
        self.assertIsNone(audio)
        self.assertIn("Audio generation failed", error)

        audio, error = await service.synthesize_speech("   ")
        self.assertIsNone(audio)
        self.assertEqual(error, "Text to speak is required.")


if __name__ == "__main__":
    unittest.main()
