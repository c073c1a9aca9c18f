from vread.id import make_book_id
from vread.mcp.client import VreadClient


async def reading_list(
    client: VreadClient,
    status: str | None = None,
    force_refresh: bool = False,
) -> list[dict]:
    params: dict = {"force_refresh": force_refresh}
    if status:
        params["status"] = status
    result = await client.get("/api/reading/progress", params=params)
    if isinstance(result, dict) and result.get("error"):
        return []
    return result


async def book_progress(
    client: VreadClient,
    title: str,
    author: str,
    force_refresh: bool = False,
) -> dict:
    book_id = make_book_id(title, author)
    return await client.get(
        f"/api/books/{book_id}/reading/progress", params={"force_refresh": force_refresh}
    )


async def add_to_reading_list(client: VreadClient, title: str, author: str) -> dict:
    book_id = make_book_id(title, author)
    return await client.post(f"/api/books/{book_id}/reading-list")


async def reading_streak(client: VreadClient) -> dict:
    return await client.get("/api/reading/streak")


async def companion(client: VreadClient) -> dict:
    return await client.get("/api/companion")
