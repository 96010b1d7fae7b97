"""System prompt fragments describing well-known MCP servers to the model."""

from typing import Iterable, Union

from ..core.config_schema import HttpServer, SseServer, StdioServer

HEADER = """# MCP Tools Available
The following MCP servers are enabled. Use their tools as needed:"""

FOOTER = "\n**Remember**: Check CLAUDE.md for detailed usage instructions."

MCP_SYSTEM_PROMPTS: dict[str, str] = {
    "sequential-thinking": """
## Sequential Thinking
**Purpose**: Structured thinking tool for complex problems
**Core**: sequentialthinking - Break tasks into steps, supports branching & revision
**Use cases**: Unclear requirements, iterative exploration, multi-solution comparison
**Usage**: Each step: goal→execute→record→decide next""",

    "context7": """
## Context7
**Purpose**: Fetch latest official docs, solve outdated knowledge issues
**Core**: resolve-library-id, get-library-docs
**When**: Unclear APIs, version differences, need official examples
**Note**: Call on-demand to save tokens""",

    "basic-memory": """
## Basic Memory
**Purpose**: Persistent knowledge base with notes & search
**Core**: write_note, read_note, search_notes, recent_activity, canvas
**Organization**: Use folder structure (e.g. projects/my-app), supports tags
**Best practice**: Create separate notes per topic, use descriptive titles""",

    "playwright": """
## Playwright
**Purpose**: Browser automation - web scraping, form filling, UI testing
**Core**: navigate, screenshot, click, fill, evaluate, save_as_pdf
**File paths**: Screenshots→./CCimages/screenshots/ PDFs→./CCimages/pdfs/""",

    "gemini-assistant": """
## Gemini AI Assistant
**Purpose**: AI-powered UI generation, multimodal analysis, and creative coding
**Core Tools**:
- `gemini_generate_ui` - Generate HTML/CSS/JS from description or design image
- `gemini_multimodal_query` - Analyze images with natural language questions
- `gemini_fix_ui_from_screenshot` - Diagnose and fix UI issues from screenshots
- `gemini_analyze_codebase` - Analyze an entire codebase in one pass
**When to use Gemini**: frontend generation, design-to-code, screenshot analysis""",
}


def system_prompts(servers: Iterable[Union[StdioServer, HttpServer, SseServer]]) -> str:
    """Assemble the appended system prompt for the enabled servers.

    A server's own ``prompt`` setting takes precedence over the built-in
    fragment for its name.  Returns ``""`` when no server contributes.
    """
    parts = [HEADER]
    for server in servers:
        fragment = server.prompt or MCP_SYSTEM_PROMPTS.get(server.name)
        if fragment and fragment.strip():
            parts.append(fragment.strip())
    if len(parts) == 1:
        return ""
    parts.append(FOOTER)
    return "\n".join(parts)
