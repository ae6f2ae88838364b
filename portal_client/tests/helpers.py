"""
Test helper functions and factory methods for the Portal client.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx
import jwt
from pydantic import BaseModel, ConfigDict, Field

from portal_client.app.adapters.auth_token import StaticTokenProvider
from portal_client.app.adapters.executor import RequestExecutor
from portal_client.app.endpoints import (
    EndpointContract,
    EndpointExamples,
    FieldKind,
    FieldSpec,
    Methods,
    UserRole,
    create_endpoint,
)
from portal_client.app.storage import LocalStorageBackend, StorageClient
from portal_client.app.store import ApiStore
from shared.config import PortalConfig
from shared.metrics import MetricsCollector


class Earning(BaseModel):
    """Courier earning as returned by the earnings endpoints."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    date: date
    amount: float
    deliveries: int
    created_at: datetime = Field(alias="createdAt")


class EarningCreate(BaseModel):
    """Payload for creating an earning."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    date: date
    amount: float = Field(gt=0)
    deliveries: int = Field(ge=0)


class EarningsFilter(BaseModel):
    """Optional filters for listing earnings."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    paid: Optional[bool] = None
    page: int = Field(default=1, ge=1)


class EarningUrlParams(BaseModel):
    id: str = Field(min_length=1)


@dataclass
class MockResponse:
    """One scripted response for the recording transport."""
    __test__ = False

    status_code: int = 200
    json: Any = None
    text: Optional[str] = None
    delay: float = 0.0
    reason: Optional[str] = None


def success_envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def error_envelope(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}


RouteEntry = Union[MockResponse, Exception, Callable[[httpx.Request], MockResponse]]


class RecordingTransport:
    """Async handler for ``httpx.MockTransport`` that records every request.

    Routes are keyed by method and URL path. A route holds a list of entries
    consumed in order; the last one repeats. Unknown routes answer 404.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[RouteEntry]] = {}

    def add(self, method: str, path: str, *entries: RouteEntry) -> "RecordingTransport":
        self.routes[(method.upper(), path)] = list(entries)
        return self

    def succeed(self, method: str, path: str, data: Any, delay: float = 0.0) -> "RecordingTransport":
        return self.add(method, path, MockResponse(json=success_envelope(data), delay=delay))

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        return [
            request for request in self.requests
            if request.method == method.upper() and request.url.path == path
        ]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entries = self.routes.get((request.method, request.url.path))
        if not entries:
            return httpx.Response(404, json=error_envelope("Not found"))

        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        if isinstance(entry, Exception):
            raise entry
        if callable(entry) and not isinstance(entry, MockResponse):
            entry = entry(request)

        if entry.delay:
            await asyncio.sleep(entry.delay)

        extensions = {"reason_phrase": entry.reason.encode()} if entry.reason else None
        if entry.text is not None:
            return httpx.Response(entry.status_code, text=entry.text, extensions=extensions)
        return httpx.Response(entry.status_code, json=entry.json, extensions=extensions)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class ManualClock:
    """Millisecond clock that only moves when told to."""
    __test__ = False

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class TestDataFactory:
    """Factory for creating test data."""
    __test__ = False

    @staticmethod
    def create_test_earnings() -> List[Dict[str, Any]]:
        """Create earnings as the server sends them."""
        return [
            {
                "id": "earning-id-1",
                "userId": "user-id-1",
                "date": "2023-01-01",
                "amount": 120.5,
                "deliveries": 10,
                "createdAt": "2023-01-01T00:00:00Z",
            },
            {
                "id": "earning-id-2",
                "userId": "user-id-1",
                "date": "2023-01-02",
                "amount": 80.0,
                "deliveries": 7,
                "createdAt": "2023-01-02T00:00:00Z",
            },
        ]

    @staticmethod
    def create_earning_payload() -> Dict[str, Any]:
        return {
            "userId": "user-id-1",
            "date": "2023-01-03",
            "amount": 99.5,
            "deliveries": 8,
        }

    @staticmethod
    def create_earnings_contracts() -> Dict[Methods, EndpointContract]:
        """GET lists earnings, POST creates one; both live at v1/earnings."""
        earnings = TestDataFactory.create_test_earnings()
        contracts = create_endpoint(
            method=Methods.GET,
            path=("v1", "earnings"),
            response_schema=List[Earning],
            request_schema=EarningsFilter,
            allowed_roles={UserRole.ADMIN, UserRole.COURIER},
            description="List earnings",
            fields=(
                FieldSpec("userId", FieldKind.TEXT, required=False),
                FieldSpec("paid", FieldKind.BOOLEAN, required=False),
                FieldSpec("page", FieldKind.NUMBER, required=False),
            ),
            examples=EndpointExamples(responses={"default": earnings}),
        )
        contracts.update(create_endpoint(
            method=Methods.POST,
            path=("v1", "earnings"),
            response_schema=Earning,
            request_schema=EarningCreate,
            allowed_roles={UserRole.ADMIN},
            description="Create an earning",
            error_codes={400: "Invalid earning data", 403: "Forbidden"},
            fields=(
                FieldSpec("userId", FieldKind.TEXT),
                FieldSpec("date", FieldKind.DATE),
                FieldSpec("amount", FieldKind.NUMBER),
                FieldSpec("deliveries", FieldKind.NUMBER),
            ),
            examples=EndpointExamples(
                payloads={"default": TestDataFactory.create_earning_payload()},
                responses={"default": earnings[0]},
            ),
        ))
        return contracts

    @staticmethod
    def create_earning_detail_contract() -> EndpointContract:
        """GET v1/earnings/{id}, public."""
        return EndpointContract(
            method=Methods.GET,
            path=("v1", "earnings", "{id}"),
            response_schema=Earning,
            url_schema=EarningUrlParams,
            description="Get one earning",
        )

    @staticmethod
    def create_test_config(**overrides: Any) -> PortalConfig:
        settings: Dict[str, Any] = {
            "app_name": "portal-test",
            "env": "test",
            "base_url": "http://api.test",
            "refresh_delay_ms": 0,
        }
        settings.update(overrides)
        return PortalConfig(**settings)


class MockTokenGenerator:
    """Generate mock JWT tokens for testing."""

    def __init__(self, issuer: str = "http://localhost:3000", secret: str = "mock-secret"):
        self.issuer = issuer
        self.secret = secret

    def generate_access_token(
        self,
        user_id: str = "user-id-1",
        roles: Sequence[str] = (UserRole.COURIER.value,),
        expires_in: int = 3600,
    ) -> str:
        """Generate access token for user."""
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self.issuer,
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
            "roles": list(roles),
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Decode and verify a token issued by this generator."""
        return jwt.decode(token, self.secret, algorithms=["HS256"], issuer=self.issuer)


def create_mock_jwt_token(user_id: str = "user-id-1", roles: Sequence[str] = (UserRole.COURIER.value,)) -> str:
    return mock_token_generator.generate_access_token(user_id, roles)


def create_test_store(
    transport: Optional[RecordingTransport] = None,
    *,
    signed_in: bool = True,
    token: Optional[str] = None,
    clock: Optional[ManualClock] = None,
    backend: Optional[LocalStorageBackend] = None,
    metrics: Optional[MetricsCollector] = None,
    on_error: Optional[Callable[..., None]] = None,
    **config_overrides: Any,
) -> ApiStore:
    """Store wired to a recording transport, in-memory storage and a manual clock.

    A signed-in store sends a mock JWT unless an explicit token is given.
    """
    if signed_in and token is None:
        token = create_mock_jwt_token()
    transport = transport or RecordingTransport()
    clock = clock or ManualClock()
    config = TestDataFactory.create_test_config(**config_overrides)
    storage = StorageClient(
        backend if backend is not None else LocalStorageBackend(),
        config.app_name,
        max_age_ms=config.cache_max_age_ms,
        clock=clock,
    )
    executor = RequestExecutor(
        config,
        StaticTokenProvider(token if signed_in else None),
        client=transport.client(),
        metrics=metrics,
    )
    return ApiStore(
        config,
        executor=executor,
        storage=storage,
        metrics=metrics,
        on_error=on_error,
        clock=clock,
    )


def stored_entry(value: Any, written_at: float) -> str:
    """Serialized storage envelope, as written by StorageClient."""
    return json.dumps({"data": value, "_timestamp": written_at})


# Global instances for easy access
mock_token_generator = MockTokenGenerator()
