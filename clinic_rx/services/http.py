from typing import Any, Optional
import httpx
from loguru import logger

from clinic_rx.core.exceptions import ExternalServiceError, NotFoundError, handle_external_service_error


class ServiceClient:
    """Thin JSON client over httpx for one collaborator service"""

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise handle_external_service_error(e, self.service_name, f"{method} {path}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{self.service_name}: {path} not found")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise handle_external_service_error(e, self.service_name, f"{method} {path}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"{self.service_name} returned a non-JSON body for {method} {path}")
            raise ExternalServiceError(
                message=f"External service {self.service_name} returned an invalid response",
                details={"service_name": self.service_name, "operation": f"{method} {path}"},
            ) from e

        if isinstance(body, dict) and body.get("success") is False:
            raise ExternalServiceError(
                message=body.get("error") or f"External service {self.service_name} reported a failure",
                details={"service_name": self.service_name, "operation": f"{method} {path}"},
            )
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


def unwrap(body: Any, key: Optional[str] = None) -> Any:
    """Accept both bare payloads and the ``{"success": true, "data": ...}`` envelope"""
    if isinstance(body, dict) and "data" in body and (key is None or key not in body):
        body = body["data"]
    if key is not None and isinstance(body, dict):
        return body.get(key)
    return body
