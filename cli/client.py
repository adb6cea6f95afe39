from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensor hub query API."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def latest(self) -> Dict[str, Any]:
        return self._request("GET", "/api/latest")

    def recent(self, limit: Optional[int] = None) -> Dict[str, Any]:
        path = "/api/recent" if limit is None else f"/api/recent/{limit}"
        return self._request("GET", path)

    def statistics(self, hours: Optional[int] = None) -> Dict[str, Any]:
        path = "/api/statistics" if hours is None else f"/api/statistics/{hours}"
        return self._request("GET", path)

    def reading_range(self, start: str, end: str) -> Dict[str, Any]:
        return self._request("GET", "/api/range", params={"start": start, "end": end})

    def cleanup(self, days: Optional[int] = None) -> Dict[str, Any]:
        path = "/api/cleanup" if days is None else f"/api/cleanup/{days}"
        return self._request("DELETE", path)

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/health")

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        payload = response.json()
        if not isinstance(payload, dict):
            raise typer.BadParameter(f"Unexpected response payload from {path}.")
        return payload

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
