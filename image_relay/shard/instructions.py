from __future__ import annotations

# Tool descriptions used by FastMCP when registering tools. Keep short and clear.
TOOL_DESCRIPTIONS: dict[str, str] = {
    "generate_image": "Generate image(s) from a text prompt. Configured providers are tried in priority order until one succeeds.",
    "edit_image": "Edit one or more images with a prompt and optional mask. Pass images as data URLs, base64, file paths or https URLs.",
    "create_variation": "Create variations of a single image (dall-e-2 on OpenAI-compatible providers).",
    "list_models": "Return the models available across configured providers and the usable configurations.",
}


# High-level, concise server instructions for agents.
SERVER_INSTRUCTIONS: str = (
    "Image Relay MCP Server - Agent Instructions.\n"
    "Role: This server exposes four tools: list_models, generate_image, edit_image and create_variation. "
    "Requests are routed across the configured OpenAI-compatible and Doubao backends with automatic fail-over.\n\n"
    "Workflow (short):\n"
    "1) Call list_models to see which models the configured providers expose.\n"
    "2) Call generate_image, edit_image or create_variation. Passing a model routes the request to "
    "configurations that support it; omitting it lets each configuration use its default model.\n\n"
    "Rules:\n"
    "- Keep prompts within the configured maximum length.\n"
    "- Doubao edits accept JPEG or PNG input only.\n"
    "- Variations are only available on dall-e-2.\n\n"
    "Outputs and failures:\n"
    "- Successful calls return MCP ImageContent blocks for embedded images, TextContent for remote URLs "
    "and token usage, and a structured ImageToolStructured payload.\n"
    "- Failures surface as MCP ToolErrors. When every configuration fails, the message lists the error "
    "of each attempted configuration."
)


__all__ = ["TOOL_DESCRIPTIONS", "SERVER_INSTRUCTIONS"]
