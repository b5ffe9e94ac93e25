"""
generate_image — create an image from a text prompt.

Talks to an OpenAI-compatible ``/images/generations`` endpoint (DALL-E 3 by
default) and returns a markdown image reference as the reply fragment.
"""

from __future__ import annotations

import os
from typing import Any

import httpx
from pydantic import BaseModel, Field

from companion.tools.base import BaseTool, ToolContext, ToolExecutionError, ToolResult
from companion.utils.logging import get_logger

logger = get_logger("tool.image_gen")

MAX_PROMPT_LENGTH = 4000
IMAGE_TIMEOUT_SECONDS = 60.0


class GenerateImageArgs(BaseModel):
    prompt: str = Field(min_length=1)


class GenerateImageTool(BaseTool):
    name = "generate_image"
    description = "Generate an image from a text description when the user asks for one."
    args_model = GenerateImageArgs

    async def execute(self, args: GenerateImageArgs, ctx: ToolContext) -> ToolResult:
        tools = ctx.config.tools
        api_key = _load_api_key(tools.image_api_key_name)
        if not api_key:
            raise ToolExecutionError(f"{tools.image_api_key_name} not set")

        prompt = args.prompt[:MAX_PROMPT_LENGTH]
        async with httpx.AsyncClient(timeout=IMAGE_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{tools.image_api_base.rstrip('/')}/images/generations",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": tools.image_model,
                    "prompt": prompt,
                    "n": 1,
                    "size": tools.image_size,
                },
            )

        if response.status_code != 200:
            raise ToolExecutionError(
                f"Image API error: {response.status_code} {response.text[:200]}"
            )

        data = response.json().get("data") or [{}]
        image = data[0]
        if image.get("url"):
            src = image["url"]
        elif image.get("b64_json"):
            src = f"data:image/png;base64,{image['b64_json']}"
        else:
            raise ToolExecutionError("Image API returned no image")

        logger.info("image_generated", model=tools.image_model)
        alt = prompt.replace("]", "").replace("\n", " ")[:100]
        return ToolResult(
            success=True,
            fragment=f"![{alt}]({src})",
            data={"revised_prompt": image.get("revised_prompt", prompt)},
        )

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "prompt": {
                    "type": "string",
                    "description": "Detailed description of the image to create",
                },
            },
            "required": ["prompt"],
        }


def _load_api_key(key_name: str) -> str:
    from dotenv import load_dotenv

    load_dotenv()
    return os.getenv(key_name, "")
