"""Minimal Strava API client: activity listing and stream fetch.

Tokens come from the JSON file written by the OAuth callback and are
refreshed with the refresh-token grant when about to expire. The OAuth
authorization handshake itself happens elsewhere.
"""
import json
import logging
import os
import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from runmetrics.core.config import settings
from runmetrics.core.exceptions import RateLimitedError, RemoteFetchError
from runmetrics.schemas.strava import RemoteActivity
from runmetrics.services.stream_normalizer import STREAM_KEYS

logger = logging.getLogger(__name__)

PER_PAGE = 200
TOKEN_REFRESH_MARGIN_S = 60


def _ensure_dir(path: str):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def load_tokens(path: str | None = None) -> Optional[dict]:
    path = path or settings.strava_tokens_path
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        logger.warning("Unreadable Strava token file %s: %s", path, e)
        return None


def save_tokens(tok: dict, path: str | None = None) -> None:
    path = path or settings.strava_tokens_path
    _ensure_dir(path)
    with open(path, "w") as f:
        json.dump(tok, f)


def refresh_if_needed(tok: dict, *, transport: httpx.BaseTransport | None = None, path: str | None = None) -> dict:
    now = int(time.time())
    if tok.get("expires_at", 0) - now > TOKEN_REFRESH_MARGIN_S:
        return tok
    if not (settings.strava_client_id and settings.strava_client_secret):
        raise RemoteFetchError("Strava token expired and client credentials are not configured")
    data = {
        "client_id": settings.strava_client_id,
        "client_secret": settings.strava_client_secret,
        "grant_type": "refresh_token",
        "refresh_token": tok.get("refresh_token"),
    }
    with httpx.Client(timeout=30, transport=transport) as client:
        r = client.post(settings.strava_oauth_token_url, data=data)
    if r.status_code != 200:
        raise RemoteFetchError(f"Strava token refresh failed: {r.text}", status_code=r.status_code)
    nt = r.json()
    save_tokens(nt, path)
    logger.info("Refreshed Strava access token")
    return nt


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class StravaClient:
    def __init__(
        self,
        access_token: str,
        *,
        base_url: str | None = None,
        activity_types: str | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 60,
    ):
        types = activity_types if activity_types is not None else settings.strava_activity_types
        self.activity_types = {t.strip() for t in types.split(",") if t.strip()}
        self._client = httpx.Client(
            base_url=base_url or settings.strava_api_base,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_token_file(cls, path: str | None = None, **kwargs) -> "StravaClient":
        tok = load_tokens(path)
        if not tok:
            raise RemoteFetchError("Strava not linked: no stored tokens")
        tok = refresh_if_needed(tok, transport=kwargs.get("transport"), path=path)
        return cls(tok["access_token"], **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        try:
            r = self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise RemoteFetchError(f"Strava request failed: {e}") from e
        if r.status_code == 429:
            raise RateLimitedError("Strava rate limit reached", retry_after_s=_retry_after(r))
        if r.status_code != 200:
            raise RemoteFetchError(
                f"Strava request {path} failed with {r.status_code}: {r.text}",
                status_code=r.status_code,
            )
        return r.json()

    def _wanted(self, activity: RemoteActivity) -> bool:
        return not self.activity_types or activity.type in self.activity_types

    def _fetch_page(self, page: int, per_page: int, after: int | None) -> tuple[list[RemoteActivity], int]:
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if after is not None:
            params["after"] = after
        raw_items = self._get("/athlete/activities", params) or []
        activities = []
        for raw in raw_items:
            try:
                activities.append(RemoteActivity.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed activity %s: %s", raw.get("id") if isinstance(raw, dict) else raw, e)
        return activities, len(raw_items)

    def list_activity_page(self, page: int, after: int | None = None) -> tuple[list[RemoteActivity], bool]:
        """One page of activities of the configured types, and whether another page may follow."""
        activities, raw_count = self._fetch_page(page, PER_PAGE, after)
        return [a for a in activities if self._wanted(a)], raw_count >= PER_PAGE

    def list_all_activities(self, after: int | None = None) -> list[RemoteActivity]:
        """Every activity of the configured types, paging until a short page."""
        result: list[RemoteActivity] = []
        page = 1
        while True:
            batch, has_more = self.list_activity_page(page, after=after)
            result.extend(batch)
            if not has_more:
                break
            page += 1
        logger.info("Listed %d Strava activities over %d page(s)", len(result), page)
        return result

    def get_activity_streams(self, activity_id: int) -> dict:
        params = {"keys": ",".join(STREAM_KEYS), "key_by_type": "true"}
        data = self._get(f"/activities/{activity_id}/streams", params)
        if isinstance(data, list):
            # Without key_by_type the API returns a list of {"type": ..., "data": ...}
            return {s.get("type"): s for s in data if isinstance(s, dict)}
        return data or {}
