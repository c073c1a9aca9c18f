from vread.id import make_book_id
from vread.mcp.client import VreadClient


async def validate_segment(
    client: VreadClient,
    title: str,
    author: str,
    segment: int,
    answer: str | None = None,
) -> dict:
    """Answer the segment's question when ``answer`` is given, else validate directly."""
    book_id = make_book_id(title, author)
    if answer is not None:
        return await client.post(
            f"/api/books/{book_id}/validations/answer", json={"segment": segment, "answer": answer}
        )
    return await client.post(f"/api/books/{book_id}/validations", json={"segment": segment})


async def reveal_with_joker(client: VreadClient, title: str, author: str, segment: int) -> dict:
    book_id = make_book_id(title, author)
    return await client.post(f"/api/books/{book_id}/validations/joker", json={"segment": segment})


async def jokers(client: VreadClient, title: str, author: str) -> dict:
    book_id = make_book_id(title, author)
    return await client.get(f"/api/books/{book_id}/jokers")
