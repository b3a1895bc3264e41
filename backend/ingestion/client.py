from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any

import httpx
from loguru import logger

from pickem.core.config import settings

FIXTURES_PATH = "/fixtures"


class FootballApiError(RuntimeError):
    """The fixture feed answered with an HTTP error or a feed-level error payload."""


class FootballApiClient:
    """Thin wrapper around the api-football fixtures endpoint."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or str(settings.football_api_base_url)
        self.api_key = api_key if api_key is not None else settings.football_api_key
        if not self.api_key:
            raise FootballApiError("FOOTBALL_API_KEY is not set")
        self.timeout = timeout or settings.football_api_timeout_seconds
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"x-apisports-key": self.api_key},
            transport=transport,
        )

    def _get_fixtures(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        logger.info("Football API GET {} params={}", FIXTURES_PATH, params)
        try:
            response = self.client.get(FIXTURES_PATH, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FootballApiError(f"Fixture request failed: {exc}") from exc

        payload = response.json()
        if not isinstance(payload, dict):
            raise FootballApiError("Unexpected fixture payload shape")
        # The feed reports quota and parameter problems inside a 200 response.
        errors = payload.get("errors")
        if errors:
            raise FootballApiError(f"Fixture feed errors: {errors}")
        fixtures = payload.get("response")
        if not isinstance(fixtures, list):
            return []
        return [item for item in fixtures if isinstance(item, dict)]

    def fetch_fixtures(
        self, league: int, season: int, *, from_date: date | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"league": league, "season": season}
        if from_date is not None:
            params["from"] = from_date.isoformat()
        return self._get_fixtures(params)

    def fetch_fixtures_by_ids(self, ids: Sequence[int]) -> list[dict[str, Any]]:
        if not ids:
            return []
        return self._get_fixtures({"ids": "-".join(str(value) for value in ids)})

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "FootballApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
