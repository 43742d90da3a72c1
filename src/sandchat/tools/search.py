"""Network search tools.

Three RapidAPI-hosted search backends with different response shapes, each
normalized into ``SearchToolResult``, plus ``aggregate_search`` which fans
out to all three concurrently and merges their results.
"""

import asyncio
import uuid
from abc import abstractmethod
from typing import Any, ClassVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import DUCKDUCKGO_HOST, GOOGLE_SEARCH_HOST, WEB_SEARCH_HOST
from .base import BaseTool

logger = structlog.get_logger(__name__)


class SearchResult(BaseModel):
    """One normalized search hit."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    snippet: str = ""
    url: str
    domain: str = ""
    position: int | None = None
    sitelinks: list[dict[str, Any]] | None = None
    date: str | None = None
    price: float | str | None = None
    currency: str | None = None
    price_range: str | None = Field(default=None, alias="priceRange")


class SearchMetadata(BaseModel):
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    total_results: int = 0
    additional_data: dict[str, Any] | None = None


class SearchToolResult(BaseModel):
    """Common result shape of every search tool."""

    results: list[SearchResult] = Field(default_factory=list)
    summary: str = ""
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)
    error: str | None = None
    details: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _domain(url: str) -> str:
    try:
        return httpx.URL(url).host
    except httpx.InvalidURL:
        return ""


def _found(results: list[SearchResult], query: str, **metadata: Any) -> SearchToolResult:
    return SearchToolResult(
        results=results,
        summary=f'Found {len(results)} results for "{query}"',
        metadata=SearchMetadata(total_results=len(results), **metadata),
    )


class QueryParams(BaseModel):
    query: str = Field(description="The search query to look up")


class WebSearchParams(QueryParams):
    limit: int = Field(default=5, description="Maximum number of results to return (1-10)")


class RapidAPISearchTool(BaseTool):
    """Base for search tools served through RapidAPI.

    Subclasses set ``host`` and ``path`` and turn the decoded JSON body into
    a ``SearchToolResult``.
    """

    host: ClassVar[str]
    path: ClassVar[str] = "/"
    Params = QueryParams

    def __init__(self, client: httpx.AsyncClient, api_key: str):
        self._client = client
        self._api_key = api_key

    def query_params(self, params: Any) -> dict[str, str]:
        return {"q": params.query}

    @abstractmethod
    def parse(self, data: Any, query: str) -> SearchToolResult:
        """Normalize a decoded response body."""

    async def search(self, params: Any) -> SearchToolResult:
        """Run the search, converting transport and decoding failures into an error result."""
        try:
            response = await self._client.get(
                f"https://{self.host}{self.path}",
                params=self.query_params(params),
                headers={
                    "x-rapidapi-key": self._api_key,
                    "x-rapidapi-host": self.host,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("search_request_failed", tool=self.name, error=str(e))
            return SearchToolResult(error="Search request failed", details=str(e) or type(e).__name__)
        return self.parse(data, params.query)

    async def run(self, params: Any) -> dict[str, Any]:
        return (await self.search(params)).to_payload()


class WebSearchTool(RapidAPISearchTool):
    name = "web_search"
    description = (
        "Search the web using a real-time search API. Best for current information and news. "
        "Returns relevant URLs and snippets. Use this when you need up-to-date information "
        "or news articles."
    )
    host = WEB_SEARCH_HOST
    path = "/search"
    Params = WebSearchParams

    def query_params(self, params: WebSearchParams) -> dict[str, str]:
        return {"q": params.query, "limit": str(min(max(1, params.limit), 10))}

    def parse(self, data: Any, query: str) -> SearchToolResult:
        if not isinstance(data, dict) or data.get("status") != "OK":
            status = data.get("status") if isinstance(data, dict) else None
            return SearchToolResult(error=f"Search failed with status: {status}", details=str(data))

        results = [
            SearchResult(
                title=item.get("title") or "",
                snippet=item.get("snippet") or "",
                url=item.get("url") or "",
                domain=item.get("domain") or _domain(item.get("url") or ""),
            )
            for item in data.get("data") or []
        ]
        return _found(results, query, request_id=data.get("request_id") or str(uuid.uuid4()))


class DuckDuckGoSearchTool(RapidAPISearchTool):
    name = "duck_duck_go_search"
    description = (
        "Search the web using DuckDuckGo. Best for privacy-focused searches and general "
        "information. Returns relevant URLs and snippets. Use this when you want to avoid "
        "personalized results or need general information about a topic."
    )
    host = DUCKDUCKGO_HOST

    def parse(self, data: Any, query: str) -> SearchToolResult:
        items = data.get("results") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return SearchToolResult(
                error="DuckDuckGo API returned unexpected response",
                details=str(data),
            )

        results = [
            SearchResult(
                title=item.get("title") or "",
                snippet=item.get("description") or "",
                url=item.get("url") or "",
                domain=_domain(item.get("url") or ""),
            )
            for item in items
        ]
        return _found(results, query)


class GoogleSearchTool(RapidAPISearchTool):
    name = "google_search"
    description = (
        "Search the web using Google. Best for comprehensive results with rich metadata. "
        "Returns URLs, snippets, and additional information like related searches and places. "
        "Use this when you need detailed information with related content and local results."
    )
    host = GOOGLE_SEARCH_HOST
    path = "/search"

    def query_params(self, params: QueryParams) -> dict[str, str]:
        return {
            "q": params.query,
            "gl": "us",
            "hl": "en",
            "autocorrect": "true",
            "num": "10",
            "page": "1",
        }

    def parse(self, data: Any, query: str) -> SearchToolResult:
        organic = data.get("organic") if isinstance(data, dict) else None
        if not isinstance(organic, list):
            return SearchToolResult(
                error="Google API returned unexpected response",
                details=str(data),
            )

        results = [
            SearchResult(
                title=item.get("title") or "",
                snippet=item.get("snippet") or "",
                url=item.get("link") or "",
                domain=_domain(item.get("link") or ""),
                position=item.get("position"),
                sitelinks=item.get("sitelinks") or [],
                date=item.get("date"),
                price=item.get("price"),
                currency=item.get("currency"),
                price_range=item.get("priceRange"),
            )
            for item in organic
        ]
        additional_data = {
            "places": data.get("places") or [],
            "peopleAlsoAsk": data.get("peopleAlsoAsk") or [],
            "relatedSearches": data.get("relatedSearches") or [],
            "searchParameters": data.get("searchParameters"),
        }
        return _found(results, query, additional_data=additional_data)


class AggregateSearchTool(BaseTool):
    """Fan-out over the three search tools, joined and deduplicated by URL."""

    name = "aggregate_search"
    description = (
        "Perform a comprehensive web search using all available search engines (Web Search, "
        "DuckDuckGo, and Google) simultaneously. Best for thorough research and comparing "
        "results across different sources. Returns combined results with deduplication and "
        "source attribution. Use this when you need the most comprehensive coverage of a topic "
        "or want to compare results from different search engines."
    )

    class Params(BaseModel):
        query: str = Field(description="The search query to look up across all search engines")

    def __init__(
        self,
        web_search: WebSearchTool,
        duck_duck_go_search: DuckDuckGoSearchTool,
        google_search: GoogleSearchTool,
    ):
        self._sources: dict[str, RapidAPISearchTool] = {
            web_search.name: web_search,
            duck_duck_go_search.name: duck_duck_go_search,
            google_search.name: google_search,
        }

    def _source_params(self, source: RapidAPISearchTool, query: str) -> BaseModel:
        if isinstance(source, WebSearchTool):
            return WebSearchParams(query=query, limit=10)
        return QueryParams(query=query)

    async def run(self, params: "AggregateSearchTool.Params") -> dict[str, Any]:
        names = list(self._sources)
        # All three requests are in flight together; the join waits for each
        outcomes = await asyncio.gather(
            *(self._sources[name].search(self._source_params(self._sources[name], params.query))
              for name in names),
            return_exceptions=True,
        )

        per_source: dict[str, SearchToolResult] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("aggregate_source_failed", source=name, error=str(outcome))
                outcome = SearchToolResult(error="Search request failed", details=str(outcome))
            per_source[name] = outcome

        combined: list[SearchResult] = []
        seen_urls: set[str] = set()
        for name in names:
            for result in per_source[name].results:
                if result.url in seen_urls:
                    continue
                seen_urls.add(result.url)
                combined.append(result)

        source_counts = {name: len(per_source[name].results) for name in names}
        payload: dict[str, Any] = {name: per_source[name].to_payload() for name in names}
        payload["results"] = [r.model_dump(by_alias=True, exclude_none=True) for r in combined]
        payload["metadata"] = {
            "request_id": str(uuid.uuid4()),
            "total_results": len(combined),
            "source_counts": source_counts,
        }

        errors = [f"{name}: {result.error}" for name, result in per_source.items() if result.error]
        if errors:
            payload["error"] = "Some searches failed"
            payload["details"] = ", ".join(errors)
            payload["partial_results"] = {
                name: None if result.error else result.to_payload()
                for name, result in per_source.items()
            }
            payload["summary"] = "Partial results due to errors"
        else:
            payload["summary"] = (
                f'Found {len(combined)} unique results across all search engines for "{params.query}"'
            )
        return payload


def create_search_tools(client: httpx.AsyncClient, api_key: str) -> list[BaseTool]:
    """Create the network search tools sharing one HTTP client.

    Args:
        client: Shared HTTP client (owned by the caller)
        api_key: RapidAPI key; an empty key surfaces as a failed search
    """
    web = WebSearchTool(client, api_key)
    duck = DuckDuckGoSearchTool(client, api_key)
    google = GoogleSearchTool(client, api_key)
    return [web, duck, google, AggregateSearchTool(web, duck, google)]
