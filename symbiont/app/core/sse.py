"""Server-sent event helpers for streaming responses."""
from __future__ import annotations

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": "text/event-stream",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

KEEPALIVE_COMMENT = ": keep-alive\n\n"


def format_sse(data: str, event: str | None = None) -> str:
    """Return a properly formatted SSE payload."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines() or [""]:
        lines.append(f"data: {chunk}")
    lines.append("\n")
    return "\n".join(lines)
