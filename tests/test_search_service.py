import httpx
import pytest

from services.search_service import is_search_error, search_web


def _transport(status_code=200, json=None, text=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        if json is not None:
            return httpx.Response(status_code, json=json)
        return httpx.Response(status_code, text=text or "")
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_builds_context_sections():
    seen = []
    payload = {
        "Heading": "Python (programming language)",
        "Abstract": "Python is a high-level programming language.",
        "AbstractURL": "https://en.wikipedia.org/wiki/Python_(programming_language)",
        "Answer": "",
        "Definition": "A large snake.",
        "DefinitionSource": "Merriam-Webster",
        "RelatedTopics": [
            {"Text": "<b>CPython</b> - reference implementation", "FirstURL": "https://duckduckgo.com/CPython",
             "Result": '<a href="https://duckduckgo.com/CPython">CPython</a>'},
            {"Name": "Related", "Topics": [
                {"Text": "PyPy - fast Python", "FirstURL": "https://duckduckgo.com/PyPy"},
            ]},
            {"Text": "Programming languages", "Result": '<a href="https://duckduckgo.com/c/Programming">Category</a>'},
        ],
        "Unknown": {"ignored": True},
    }

    context = await search_web("python", transport=_transport(json=payload, seen=seen))

    assert context.startswith("Topic: Python (programming language)\nSummary: Python is a high-level")
    assert "Source: https://en.wikipedia.org/wiki/Python_(programming_language)" in context
    assert "Direct Answer" not in context
    assert "Definition: A large snake.\nDefinition Source: Merriam-Webster" in context
    assert "- CPython - reference implementation (More: https://duckduckgo.com/CPython)" in context
    assert "- PyPy - fast Python" in context
    assert "Programming languages" not in context
    assert seen[0].url.params["q"] == "python"
    assert seen[0].url.params["format"] == "json"


@pytest.mark.asyncio
async def test_related_topics_are_capped():
    payload = {"RelatedTopics": [{"Text": f"Topic {i}"} for i in range(10)]}
    context = await search_web("x", transport=_transport(json=payload))
    assert "- Topic 4" in context
    assert "- Topic 5" not in context


@pytest.mark.asyncio
async def test_long_context_is_truncated():
    payload = {"Abstract": "word " * 1000}
    context = await search_web("x", transport=_transport(json=payload))
    assert context.endswith("... (context truncated)")
    assert len(context) == 2000 + len("... (context truncated)")


@pytest.mark.asyncio
async def test_nothing_found():
    assert await search_web("x", transport=_transport(json={"Abstract": "", "RelatedTopics": []})) is None


@pytest.mark.asyncio
async def test_blank_query_makes_no_request():
    seen = []
    assert await search_web("   ", transport=_transport(json={}, seen=seen)) is None
    assert seen == []


@pytest.mark.asyncio
async def test_http_error_status():
    result = await search_web("x", transport=_transport(status_code=503, text="down"))
    assert is_search_error(result)
    assert "status 503" in result


@pytest.mark.asyncio
async def test_unparseable_body():
    result = await search_web("x", transport=_transport(text="<html>"))
    assert is_search_error(result)
    assert "Could not parse" in result


@pytest.mark.asyncio
async def test_network_failure():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await search_web("x", transport=httpx.MockTransport(handler))
    assert is_search_error(result)


def test_is_search_error():
    assert is_search_error("Error: boom")
    assert not is_search_error("Topic: x")
    assert not is_search_error(None)
