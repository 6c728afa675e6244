"""HTTP client for the ERP backend."""

import logging
from typing import Any

import httpx

from admissions.core.context import AppContext
from admissions.core.exceptions import BackendError, ResponseShapeError

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Could not reach the server. Please check your connection and try again."


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def extract_error_message(response: httpx.Response) -> str:
    """Best human-readable message from an ERP error response."""
    body = _json_or_none(response)

    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
        if isinstance(detail, list) and detail:
            # FastAPI validation errors
            messages = [item.get("msg", "") for item in detail if isinstance(item, dict)]
            if any(messages):
                return "; ".join(m for m in messages if m)
        message = body.get("message")
        if isinstance(message, str) and message:
            return message

    return response.reason_phrase or f"Request failed with status {response.status_code}"


class ErpClient:
    """Thin wrapper over ``httpx.AsyncClient`` bound to one session context.

    Every call forwards the context headers, turns transport failures and
    non-2xx answers into ``BackendError`` and leaves body interpretation to
    the caller.
    """

    def __init__(self, http: httpx.AsyncClient, context: AppContext) -> None:
        self.http = http
        self.context = context

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self.context.erp_headers(), **kwargs.pop("headers", {})}
        try:
            response = await self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("ERP %s %s failed: %s", method, path, exc)
            raise BackendError(NETWORK_ERROR_MESSAGE) from exc

        if response.is_error:
            message = extract_error_message(response)
            logger.warning(
                "ERP %s %s returned %s: %s", method, path, response.status_code, message
            )
            raise BackendError(
                message,
                status_code=response.status_code,
                payload=_json_or_none(response),
            )

        return response

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.request("GET", path, params=params)
        return self._json(response)

    async def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self.request("POST", path, json=payload)
        return self._json(response)

    async def put_json(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self.request("PUT", path, json=payload)
        return self._json(response)

    async def put_form(self, path: str, fields: dict[str, str]) -> Any:
        """PUT as multipart/form-data (plain fields, no files)."""
        files = [(name, (None, value)) for name, value in fields.items()]
        response = await self.request("PUT", path, files=files)
        return self._json(response)

    async def get_bytes(self, path: str) -> tuple[bytes, str]:
        response = await self.request("GET", path)
        media_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, media_type.split(";")[0].strip()

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseShapeError("Server returned a non-JSON response") from exc
