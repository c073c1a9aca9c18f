from httpx import AsyncClient, Response


class VreadClient:
    """Wraps an httpx.AsyncClient for one reader and turns API responses
    into plain dicts for MCP tool returns."""

    def __init__(self, http: AsyncClient, user_id: str) -> None:
        self.http = http
        self.user_id = user_id

    @property
    def headers(self) -> dict[str, str]:
        return {"X-User-Id": self.user_id}

    async def get(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.get(path, headers=self.headers, **kwargs)
        return self._handle(resp)

    async def post(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.post(path, headers=self.headers, **kwargs)
        return self._handle(resp)

    async def put(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.put(path, headers=self.headers, **kwargs)
        return self._handle(resp)

    async def delete(self, path: str, **kwargs) -> dict | list:
        resp = await self.http.delete(path, headers=self.headers, **kwargs)
        return self._handle(resp)

    def _handle(self, resp: Response) -> dict | list:
        if resp.status_code == 204:
            return {"ok": True}
        if resp.status_code >= 500:
            raise RuntimeError(f"Server error {resp.status_code}: {resp.text}")
        if resp.status_code >= 400:
            detail = resp.json().get("detail", resp.text)
            return {"error": True, "status": resp.status_code, "detail": detail}
        return resp.json()
