from __future__ import annotations

import argparse
import asyncio
import base64
import sys
from functools import lru_cache
from typing import Annotated, Any, Literal, NoReturn

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import ToolResult
from fastmcp.utilities.types import Image
from loguru import logger
from mcp.types import ImageContent, TextContent
from pydantic import Field

from .exceptions import ImageGenerationError, InvalidRequestError
from .orchestrator import ImageOrchestrator
from .schema import ImageDescriptor, ImageElement, ImageToolStructured, ModelsResponse
from .settings import get_settings
from .shard.enums import ElementKind
from .shard.instructions import SERVER_INSTRUCTIONS, TOOL_DESCRIPTIONS
from .utils.error_helpers import augment_with_capability_tip
from .utils.image_utils import read_image_bytes_and_mime, split_data_url

app = FastMCP("image-relay-mcp", instructions=SERVER_INSTRUCTIONS)


@lru_cache
def get_orchestrator() -> ImageOrchestrator:
    return ImageOrchestrator(get_settings())


def _handle_image_generation_error(e: Exception) -> NoReturn:
    """Convert an exception to a ToolError for proper MCP error handling."""
    if isinstance(e, ImageGenerationError):
        raise ToolError(augment_with_capability_tip(e.user_message))

    # For unexpected exceptions, log and provide a generic error message
    logger.error(f"Unexpected error: {type(e).__name__}: {e}")
    raise ToolError("An unexpected error occurred. Please try again.")


def render_elements(elements: list[ImageElement]) -> tuple[list[ImageContent | TextContent], ImageToolStructured]:
    """Render image elements as MCP content blocks plus a blob-free summary.

    Data URLs are embedded as ImageContent; remote URLs and text items become
    TextContent.
    """
    contents: list[ImageContent | TextContent] = []
    descriptors: list[ImageDescriptor] = []
    notes: list[str] = []

    for element in elements:
        if element.kind == ElementKind.IMAGE and element.src:
            if element.is_data_url:
                mime, payload = split_data_url(element.src)
                image = Image(data=base64.b64decode(payload), format=mime.split("/", 1)[-1])
                contents.append(image.to_image_content())
                descriptors.append(ImageDescriptor(mimeType=mime, embedded=True))
            else:
                contents.append(TextContent(type="text", text=element.src))
                descriptors.append(ImageDescriptor(url=element.src))
        elif element.kind == ElementKind.TEXT and element.text:
            contents.append(TextContent(type="text", text=element.text))
            if element.text.strip():
                notes.append(element.text.strip())

    structured = ImageToolStructured(ok=True, image_count=len(descriptors), images=descriptors, notes=notes)
    return contents, structured


async def _read_source(source: str) -> bytes:
    try:
        data, _ = await asyncio.to_thread(read_image_bytes_and_mime, source)
    except (ValueError, OSError) as e:
        raise InvalidRequestError(f"Could not read image: {e}") from e
    return data


def _options(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


@app.tool(
    name="generate_image",
    description=TOOL_DESCRIPTIONS["generate_image"],
    annotations={
        "title": "Generate Image(s)",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_generate_image(
    prompt: Annotated[str, Field(description="Text description of the desired image.")],
    model: Annotated[
        str | None,
        Field(description="Optional model id (e.g. 'dall-e-3', 'gpt-image-1', 'high_aes_general_v30l_zt2i')."),
    ] = None,
    n: Annotated[int | None, Field(ge=1, description="Count of images to generate; provider limits apply.")] = None,
    size: Annotated[str | None, Field(description="Native size such as '1024x1024'.")] = None,
    quality: Annotated[str | None, Field(description="Native quality, e.g. 'standard' | 'hd' | 'high'.")] = None,
    style: Annotated[Literal["vivid", "natural"] | None, Field(description="dall-e-3 style.")] = None,
    background: Annotated[
        Literal["transparent", "opaque", "auto"] | None,
        Field(description="gpt-image-1 background."),
    ] = None,
    output_format: Annotated[Literal["png", "jpeg", "webp"] | None, Field(description="gpt-image-1 output format.")] = None,
    seed: Annotated[int | None, Field(description="Doubao seed; -1 for random.")] = None,
    ctx: Context | None = None,
) -> ToolResult:
    """Generate image(s) from a prompt across the configured providers."""
    try:
        options = _options(
            model=model,
            n=n,
            size=size,
            quality=quality,
            style=style,
            background=background,
            output_format=output_format,
            seed=seed,
        )
        elements = await get_orchestrator().generate_image(prompt, options)
        contents, structured = render_elements(elements)
        return ToolResult(content=contents, structured_content=structured.model_dump())
    except Exception as e:
        _handle_image_generation_error(e)


@app.tool(
    name="edit_image",
    description=TOOL_DESCRIPTIONS["edit_image"],
    annotations={
        "title": "Edit Image",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_edit_image(
    prompt: Annotated[str, Field(description="Text instruction describing the edit to perform.")],
    images: Annotated[
        list[str],
        Field(
            description=(
                "One or more image sources. Accepted forms: (1) http(s) URL, (2) local file path or file:// URL, "
                "(3) data URL 'data:image/<type>;base64,<payload>', or (4) bare base64 string."
            )
        ),
    ],
    mask: Annotated[
        str | None,
        Field(description="Optional mask image (same encoding forms as items in 'images')."),
    ] = None,
    model: Annotated[str | None, Field(description="Optional model id to use for editing.")] = None,
    n: Annotated[int | None, Field(ge=1, description="Count of images to generate; provider limits apply.")] = None,
    size: Annotated[str | None, Field(description="Native size such as '1024x1024'.")] = None,
    quality: Annotated[str | None, Field(description="gpt-image-1 quality.")] = None,
    ctx: Context | None = None,
) -> ToolResult:
    """Edit image(s) with a prompt and optional mask."""
    try:
        data = [await _read_source(src) for src in images]
        mask_bytes = await _read_source(mask) if mask else None
        options = _options(mask=mask_bytes, model=model, n=n, size=size, quality=quality)
        elements = await get_orchestrator().edit_image(data, prompt, options)
        contents, structured = render_elements(elements)
        return ToolResult(content=contents, structured_content=structured.model_dump())
    except Exception as e:
        _handle_image_generation_error(e)


@app.tool(
    name="create_variation",
    description=TOOL_DESCRIPTIONS["create_variation"],
    annotations={
        "title": "Create Image Variation",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_create_variation(
    image: Annotated[str, Field(description="Source image (URL, file path, data URL or base64).")],
    model: Annotated[str | None, Field(description="Optional model id; only dall-e-2 supports variations.")] = None,
    n: Annotated[int | None, Field(ge=1, description="Count of variations.")] = None,
    size: Annotated[str | None, Field(description="Native size such as '1024x1024'.")] = None,
    ctx: Context | None = None,
) -> ToolResult:
    """Create variations of a single image."""
    try:
        data = await _read_source(image)
        elements = await get_orchestrator().create_variation(data, _options(model=model, n=n, size=size))
        contents, structured = render_elements(elements)
        return ToolResult(content=contents, structured_content=structured.model_dump())
    except Exception as e:
        _handle_image_generation_error(e)


@app.tool(
    name="list_models",
    description=TOOL_DESCRIPTIONS["list_models"],
    annotations={
        "title": "List Models",
        "readOnlyHint": True,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def mcp_list_models() -> ModelsResponse:
    """Return models and configurations currently usable."""
    try:
        orchestrator = get_orchestrator()
        models = await orchestrator.get_available_models()
        return ModelsResponse(
            models=models,
            by_provider=orchestrator.get_model_registry(),
            configs=orchestrator.get_available_configs(),
        )
    except Exception as e:
        _handle_image_generation_error(e)


def main() -> None:
    parser = argparse.ArgumentParser(description="Image Relay MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse", "streamable-http"],
        help="Transport to use (stdio, sse, http, streamable-http). Default: stdio",
    )
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    args = parser.parse_args()

    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())

    orchestrator = get_orchestrator()
    if not orchestrator.is_enabled():
        logger.warning("No provider configuration is enabled; image tools will fail until one is configured")

    transport = args.transport
    logger.info(f"Starting image relay server ({orchestrator.get_config_count()} config(s)) with {transport or 'stdio'} transport")

    # FastMCP's stdio transport does not accept `host`/`port` kwargs.
    http_transports = {"http", "sse", "streamable-http"}
    if transport in http_transports:
        app.run(transport=transport, host=args.host, port=args.port)
    else:
        app.run()


if __name__ == "__main__":
    main()
