"""JudgeService over the platform REST API (httpx)."""
from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


class JudgeError(Exception):
    """Judge call failed: transport error, non-2xx status or unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HttpJudgeService:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float | None = 45.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._get_client().post(url, json=body, headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning(f"Judge request to {path} failed: {e!r}")
            raise JudgeError(f"Judge unavailable: {e}") from e

        if response.is_error:
            message = None
            try:
                data = response.json()
                if isinstance(data, dict):
                    message = data.get("message") or data.get("error")
            except ValueError:
                pass
            logger.warning(f"Judge {path} returned HTTP {response.status_code}")
            raise JudgeError(
                message or f"Judge returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise JudgeError(f"Judge returned a non-JSON body for {path}") from e

    async def run_probe(
        self, code: str, language: str, problem_id: str, case_index: int = 0
    ) -> Any:
        return await self._post(
            "/judge/run",
            {
                "code": code,
                "language": language,
                "problemId": problem_id,
                "testCaseIndex": case_index,
            },
        )

    async def submit_solo(self, code: str, language: str, problem_id: str) -> Any:
        return await self._post(
            "/judge/submit", {"code": code, "language": language, "problemId": problem_id}
        )

    async def submit_match(self, match_id: str, code: str, language: str) -> Any:
        return await self._post(f"/matches/{match_id}/submit", {"code": code, "language": language})

    async def submit_contest(
        self, contest_id: str, problem_id: str, code: str, language: str
    ) -> Any:
        return await self._post(
            f"/contests/{contest_id}/submit",
            {"problemId": problem_id, "code": code, "language": language},
        )

    async def give_up(self, match_id: str) -> Any:
        return await self._post(f"/matches/{match_id}/giveup", {})
