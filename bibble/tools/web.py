"""Web search through the DuckDuckGo instant answer API.

Public Interface:
    - web_search(): Handle web_search tool calls
    - web_tools(): The web tool definitions

Examples:
    >>> result = await web_search({"query": "python asyncio", "max_results": 3})
    >>> result.data["results"][0]["url"]
    'https://docs.python.org/3/library/asyncio.html'
"""

import logging
import time
from typing import Any, Dict, Final, List

import aiohttp

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)

# Constants
BASE_URL: Final[str] = "https://api.duckduckgo.com/"
REQUEST_TIMEOUT: Final[float] = 15.0
MAX_RESULTS: Final[int] = 20


async def _fetch(query: str) -> Dict[str, Any]:
    """Query the instant answer API.

    Raises:
        ToolExecutionError: If the API answers with an error status
        aiohttp.ClientError: If there is a network error
    """
    params = {
        "q": query,
        "format": "json",
        "no_html": "1",
        "skip_disambig": "1",
    }
    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(BASE_URL, params=params) as response:
            if response.status != 200:
                raise ToolExecutionError(f"Search API error: {response.status}")
            # Served as application/x-javascript
            return await response.json(content_type=None)


def _flatten_topics(topics: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    results: List[Dict[str, str]] = []
    for topic in topics:
        if "Topics" in topic:
            results.extend(_flatten_topics(topic["Topics"]))
        elif topic.get("FirstURL") and topic.get("Text"):
            results.append({
                "title": topic["Text"].split(" - ")[0],
                "url": topic["FirstURL"],
                "snippet": topic["Text"],
            })
    return results


def parse_results(data: Dict[str, Any], max_results: int) -> Dict[str, Any]:
    """Turn an instant answer payload into a result list."""
    results: List[Dict[str, str]] = []
    if data.get("AbstractText") and data.get("AbstractURL"):
        results.append({
            "title": data.get("Heading") or data["AbstractURL"],
            "url": data["AbstractURL"],
            "snippet": data["AbstractText"],
        })
    results.extend(_flatten_topics(data.get("Results") or []))
    results.extend(_flatten_topics(data.get("RelatedTopics") or []))

    parsed: Dict[str, Any] = {"results": results[:max_results]}
    if data.get("Answer"):
        parsed["answer"] = data["Answer"]
    if data.get("Definition"):
        parsed["definition"] = data["Definition"]
    return parsed


async def web_search(params: Dict[str, Any]) -> ToolResult:
    """Search the web.

    Args:
        params: Dictionary containing:
            - query: Search terms
            - max_results: Number of results to return (default 5)
    """
    query = str(params["query"]).strip()
    if not query:
        raise ToolExecutionError("Query cannot be empty")
    max_results = max(1, min(int(params.get("max_results") or 5), MAX_RESULTS))

    start_time = time.time()
    try:
        data = await _fetch(query)
    except aiohttp.ClientError as e:
        logger.error("Web search failed", extra={
            "error": sanitize_log_message(str(e)),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        raise ToolExecutionError(f"Network error: {e}")

    parsed = parse_results(data, max_results)
    logger.debug("Web search completed", extra={
        "num_results": len(parsed["results"]),
        "duration_ms": int((time.time() - start_time) * 1000)
    })

    if not parsed["results"] and "answer" not in parsed and "definition" not in parsed:
        return ToolResult.ok(data={"query": query, "results": []}, message=f"No results found for '{query}'")
    parsed["query"] = query
    return ToolResult.ok(data=parsed)


def web_tools() -> List[BuiltInTool]:
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "web_search",
                "Search the web and return titles, links and snippets",
                {
                    "query": ToolParameter(type="string", description="Search terms", required=True),
                    "max_results": ToolParameter(
                        type="integer", description="Number of results", default=5
                    ),
                },
            ),
            handler=web_search,
            category="web",
        ),
    ]
