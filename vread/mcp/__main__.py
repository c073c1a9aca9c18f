import asyncio
import logging
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from vread.app import create_app
from vread.config import API_USER_ID, DB_PATH
from vread.database import engine, init_db
from vread.mcp.client import VreadClient
from vread.mcp.server import create_mcp_server


async def prepare_database():
    await init_db()
    await engine.dispose()


def main():
    logging.basicConfig(level=logging.INFO)
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    asyncio.run(prepare_database())

    app = create_app()
    transport = ASGITransport(app=app)
    http = AsyncClient(transport=transport, base_url="http://localhost")
    client = VreadClient(http, API_USER_ID)
    mcp = create_mcp_server(client)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
