import re
from typing import List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.config import settings
from core.logger import logger

SEARCH_ERROR_PREFIX = "Error:"
HTML_TAG_RE = re.compile(r"<[^>]*>?")


class DuckDuckGoIcon(BaseModel):
    model_config = ConfigDict(extra="ignore")

    URL: Optional[str] = None
    Height: Optional[Union[int, str]] = None
    Width: Optional[Union[int, str]] = None


class DuckDuckGoTopic(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Result: Optional[str] = None
    Icon: Optional[DuckDuckGoIcon] = None
    FirstURL: Optional[str] = None
    Text: Optional[str] = None
    # Category groups nest their own topics
    Name: Optional[str] = None
    Topics: List["DuckDuckGoTopic"] = Field(default_factory=list)


class DuckDuckGoResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Abstract: Optional[str] = None
    AbstractSource: Optional[str] = None
    AbstractURL: Optional[str] = None
    Heading: Optional[str] = None
    Answer: Optional[str] = None
    AnswerType: Optional[str] = None
    Definition: Optional[str] = None
    DefinitionSource: Optional[str] = None
    DefinitionURL: Optional[str] = None
    RelatedTopics: List[DuckDuckGoTopic] = Field(default_factory=list)
    Results: List[DuckDuckGoTopic] = Field(default_factory=list)
    Type: Optional[str] = None


def is_search_error(result: Optional[str]) -> bool:
    return bool(result) and result.startswith(SEARCH_ERROR_PREFIX)


def extract_topic_texts(topics: List[DuckDuckGoTopic], max_topics: int) -> List[str]:
    """Flatten related topics (depth first) into plain-text lines."""
    texts: List[str] = []

    def process(topic: DuckDuckGoTopic):
        if len(texts) >= max_topics:
            return
        result = topic.Result or ""
        is_category = "Category:" in result or result.startswith('<a href="https://duckduckgo.com/c/')
        if topic.Text and topic.Text.strip() and not is_category:
            text = HTML_TAG_RE.sub("", topic.Text)
            if topic.FirstURL:
                text += f" (More: {topic.FirstURL})"
            texts.append(text)
        for sub_topic in topic.Topics:
            if len(texts) >= max_topics:
                break
            process(sub_topic)

    for topic in topics:
        if len(texts) >= max_topics:
            break
        process(topic)
    return texts


def build_context(result: DuckDuckGoResponse) -> str:
    context = ""
    abstract = (result.Abstract or "").strip()
    if abstract:
        if result.Heading:
            context += f"Topic: {result.Heading}\nSummary: {result.Abstract}\n"
        else:
            context += f"Search Result Summary: {result.Abstract}\n"
        if result.AbstractURL:
            context += f"Source: {result.AbstractURL}\n"
        context += "---\n"

    if result.Answer and result.Answer.strip():
        context += f"Direct Answer: {result.Answer}\n"
        if result.AnswerType:
            context += f"Answer Type: {result.AnswerType}\n"
        context += "---\n"

    if result.Definition and result.Definition.strip():
        context += f"Definition: {result.Definition}\n"
        if result.DefinitionSource:
            context += f"Definition Source: {result.DefinitionSource}\n"
        if result.DefinitionURL:
            context += f"Definition URL: {result.DefinitionURL}\n"
        context += "---\n"

    related = extract_topic_texts(result.RelatedTopics, settings.SEARCH_MAX_RELATED_TOPICS)
    if related:
        context += "Related Information:\n"
        for text in related:
            context += f"- {text}\n"
        context += "---\n"

    return context.strip()


async def search_web(query: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[str]:
    """
    Look up a query on the DuckDuckGo Instant Answer API.

    Returns:
        Context text, None when nothing useful was found, or a message
        starting with "Error:" when the search failed.
    """
    if not query or not query.strip():
        return None

    params = {"q": query.strip(), "format": "json", "no_html": "1", "skip_disambig": "1"}
    try:
        async with httpx.AsyncClient(timeout=settings.SEARCH_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.get(settings.SEARCH_API_URL, params=params)
    except httpx.HTTPError as e:
        logger.error("DuckDuckGo request failed", error=str(e))
        return f"{SEARCH_ERROR_PREFIX} An unexpected error occurred while searching: {e}. Please check your network connection."

    if response.status_code != 200:
        logger.error("DuckDuckGo API error", status=response.status_code, body=response.text[:300])
        return (
            f"{SEARCH_ERROR_PREFIX} Failed to fetch from DuckDuckGo (status {response.status_code}). "
            "Please try again later or rephrase your query."
        )

    try:
        result = DuckDuckGoResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error("Failed to parse DuckDuckGo API response", error=str(e))
        return f"{SEARCH_ERROR_PREFIX} Could not parse DuckDuckGo search results. The API might have changed its format."

    context = build_context(result)
    if not context:
        logger.info("No web search context found", query=query)
        return None

    max_length = settings.SEARCH_MAX_CONTEXT_LENGTH
    if len(context) > max_length:
        return context[:max_length] + "... (context truncated)"
    return context
