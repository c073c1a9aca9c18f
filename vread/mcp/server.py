from fastmcp import FastMCP

from vread.mcp.client import VreadClient
from vread.mcp.tools.reading import (
    add_to_reading_list as _add_to_reading_list,
    book_progress as _book_progress,
    companion as _companion,
    reading_list as _reading_list,
    reading_streak as _reading_streak,
)
from vread.mcp.tools.validation import (
    jokers as _jokers,
    reveal_with_joker as _reveal_with_joker,
    validate_segment as _validate_segment,
)


def create_mcp_server(client: VreadClient) -> FastMCP:
    mcp = FastMCP(
        name="vread",
        instructions=(
            "VREAD tracks reading progress by validated segments. Each book is split "
            "into segments; validating them in order moves the book from to_read to "
            "in_progress to completed. Books are identified by title and author."
        ),
    )

    @mcp.tool()
    async def reading_list(status: str | None = None, force_refresh: bool = False) -> list[dict]:
        """List books on the reading list with their reconciled status and progress.
        Filter by status: to_read, in_progress or completed."""
        return await _reading_list(client, status=status, force_refresh=force_refresh)

    @mcp.tool()
    async def book_progress(title: str, author: str, force_refresh: bool = False) -> dict:
        """Progress on one book: validated segments, next segment and status."""
        return await _book_progress(client, title=title, author=author, force_refresh=force_refresh)

    @mcp.tool()
    async def add_to_reading_list(title: str, author: str) -> dict:
        """Put a book on the reading list."""
        return await _add_to_reading_list(client, title=title, author=author)

    @mcp.tool()
    async def validate_segment(title: str, author: str, segment: int, answer: str | None = None) -> dict:
        """Validate the next segment of a book, optionally by answering its question.
        Segments must be validated in order; repeating one is harmless."""
        return await _validate_segment(client, title=title, author=author, segment=segment, answer=answer)

    @mcp.tool()
    async def reveal_with_joker(title: str, author: str, segment: int) -> dict:
        """Spend a joker: reveal the answer and validate the segment in one step."""
        return await _reveal_with_joker(client, title=title, author=author, segment=segment)

    @mcp.tool()
    async def jokers(title: str, author: str) -> dict:
        """Jokers allowed, used and remaining for a book."""
        return await _jokers(client, title=title, author=author)

    @mcp.tool()
    async def reading_streak() -> dict:
        """Current and best streak of consecutive reading days."""
        return await _reading_streak(client)

    @mcp.tool()
    async def companion() -> dict:
        """The reading companion: stage, reading days and streaks."""
        return await _companion(client)

    return mcp
