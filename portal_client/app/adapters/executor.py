"""
Request executor: one network round trip per call, never raising.
"""

import time
from typing import Any, Optional, TYPE_CHECKING

import httpx

from shared.config import PortalConfig
from shared.errors import (
    AuthenticationError,
    HttpError,
    PortalException,
    UnknownError,
    normalize_error,
)
from shared.logging import get_logger
from ..endpoints.contract import EndpointContract
from ..endpoints.models import Err, Methods, Ok, Result
from .auth_token import TokenProvider

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def _is_success_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("success") is True and "data" in payload


def _is_error_envelope(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and payload.get("success") is False
        and isinstance(payload.get("message"), str)
    )


class RequestExecutor:
    """Performs validated calls against the remote API.

    Every outcome, including transport failures, comes back as ``Ok`` or
    ``Err``; the caller decides whether to raise.
    """

    def __init__(
        self,
        config: PortalConfig,
        token_provider: Optional[TokenProvider] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.config = config
        self.token_provider = token_provider
        self.metrics = metrics
        self.logger = get_logger("portal.executor")
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        # One long-lived client so the cookie jar carries the session.
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client

    async def _get_token(self) -> Optional[str]:
        if self.token_provider is None:
            return None
        return await self.token_provider.get_token()

    async def call(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
    ) -> Result[Any, PortalException]:
        """Validate, build and execute in one step."""
        built = contract.build_request(data, url_params, base_url=self.config.base_url)
        if isinstance(built, Err):
            return built
        return await self.execute(contract, built.value.url, built.value.body)

    async def execute(
        self,
        contract: EndpointContract,
        url: str,
        body: Optional[str],
    ) -> Result[Any, PortalException]:
        start = time.perf_counter()
        try:
            result = await self._execute(contract, url, body)
        except Exception as exc:
            self.logger.error("API request failed", url=url, error=str(exc))
            result = Err(normalize_error(exc))

        if isinstance(result, Err):
            self.logger.warning(
                "API request unsuccessful",
                method=contract.method.value,
                url=url,
                error_type=result.error.code,
                error=result.error.message,
            )

        if self.metrics:
            self.metrics.record_request(
                contract.path_str,
                contract.method.value,
                "success" if isinstance(result, Ok) else result.error.code,
                time.perf_counter() - start,
            )
        return result

    async def _execute(
        self,
        contract: EndpointContract,
        url: str,
        body: Optional[str],
    ) -> Result[Any, PortalException]:
        headers = {"Content-Type": "application/json"}

        if contract.requires_authentication():
            token = await self._get_token()
            if not token:
                return Err(AuthenticationError())
            headers["Authorization"] = f"Bearer {token}"

        content = body if contract.method != Methods.GET and body else None

        try:
            response = await self._get_client().request(
                contract.method.value,
                url,
                headers=headers,
                content=content,
            )
        except httpx.HTTPError as exc:
            return Err(HttpError(f"API request failed: {exc}"))

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            message = (
                payload["message"]
                if _is_error_envelope(payload)
                else f"API error: {response.status_code} {response.reason_phrase}"
            )
            return Err(HttpError(message, status_code=response.status_code))

        if _is_success_envelope(payload):
            validated = contract.validate_response(payload["data"])
            if isinstance(validated, Err):
                return validated
            self.logger.debug("API request succeeded", method=contract.method.value, url=url)
            return validated

        if _is_error_envelope(payload):
            return Err(HttpError(payload["message"], status_code=response.status_code))

        return Err(UnknownError(
            "Unknown error",
            details={"status_code": response.status_code, "body": response.text[:200]},
        ))

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
