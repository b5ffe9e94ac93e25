"""
web_search — search the web via DuckDuckGo (no API key needed).

The results are rendered into a short markdown summary that is appended to
the reply. Any failure propagates to the dispatcher, which drops it silently.
"""

from __future__ import annotations

import asyncio
from typing import Any

from duckduckgo_search import DDGS
from pydantic import BaseModel, Field

from companion.tools.base import BaseTool, ToolContext, ToolResult
from companion.utils.logging import get_logger

logger = get_logger("tool.web_search")

SNIPPET_LENGTH = 200


class WebSearchArgs(BaseModel):
    query: str = Field(min_length=1, max_length=500)


class WebSearchTool(BaseTool):
    name = "web_search"
    description = "Search the web for current information the user asked about."
    args_model = WebSearchArgs

    async def execute(self, args: WebSearchArgs, ctx: ToolContext) -> ToolResult:
        max_results = ctx.config.tools.search_max_results
        results = await asyncio.to_thread(self._search, args.query, max_results)
        logger.info("web_search_complete", result_count=len(results))
        if not results:
            return ToolResult(success=True, data={"result_count": 0})
        return ToolResult(
            success=True,
            fragment=format_results(args.query, results),
            data={"result_count": len(results)},
        )

    @staticmethod
    def _search(query: str, max_results: int) -> list[dict[str, Any]]:
        with DDGS() as ddgs:
            return list(ddgs.text(query, max_results=max_results))

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "What to search for",
                },
            },
            "required": ["query"],
        }


def format_results(query: str, results: list[dict[str, Any]]) -> str:
    lines = [f'**Search results for "{query}":**']
    for i, r in enumerate(results, 1):
        body = (r.get("body") or "").strip()
        if len(body) > SNIPPET_LENGTH:
            body = body[:SNIPPET_LENGTH].rstrip() + "..."
        lines.append(f"{i}. [{r.get('title', 'Untitled')}]({r.get('href', '')}): {body}")
    return "\n".join(lines)
