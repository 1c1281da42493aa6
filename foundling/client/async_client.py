"""
foundling async client.

A thin httpx wrapper over the operation protocol. One method per
operation; every method returns the reply payload, or raises
ServerError when the server answers ``success: false``.

The bearer token returned by signup()/login() is kept on the client
and sent with every later call until logout().

Usage:

    async with AsyncClient.connect("http://localhost:3001") as client:
        await client.signup("ada@example.com", "s3cret", name="Ada")
        idea_id = await client.create_idea("T", "desc", "tools")
        idea = await client.get_idea(idea_id)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import httpx

from foundling.server.protocol import Op, Resource

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────

class ClientError(Exception):
    """Base error for client operations."""


class ServerError(ClientError):
    """The server returned an error reply."""
    def __init__(self, status: int, message: str):
        self.status  = status
        self.message = message
        super().__init__(f"[{status}] {message}")


class ConnectionError(ClientError):
    """Could not reach the server."""


class TimeoutError(ClientError):
    """The server did not answer in time."""


# ─────────────────────────────────────────────────────────────
# Async Client
# ─────────────────────────────────────────────────────────────

class AsyncClient:
    """Async HTTP client for a foundling server."""

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.token    = token
        self._http    = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    # ── Lifecycle ─────────────────────────────────────────────

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        base_url: str = "http://localhost:3001",
        **kwargs,
    ) -> AsyncGenerator["AsyncClient", None]:
        """Async context manager that closes the connection pool on exit."""
        client = cls(base_url, **kwargs)
        try:
            yield client
        finally:
            await client.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AsyncClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    # ── Core call ─────────────────────────────────────────────

    async def call(self, resource: str, operation: str, **fields: Any) -> dict:
        """POST one operation and return the reply payload."""
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = await self._http.post(
                resource, json={"operation": operation, **fields}, headers=headers,
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"{resource} {operation} timed out") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Cannot reach {self.base_url}: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            raise ServerError(resp.status_code, resp.text[:200] or "Empty response")

        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("error", "Unknown error") if isinstance(data, dict) else str(data)
            raise ServerError(resp.status_code, message)
        return data

    async def health(self) -> dict:
        resp = await self._http.get("/health")
        resp.raise_for_status()
        return resp.json()

    # ── Auth ──────────────────────────────────────────────────

    async def signup(self, email: str, password: str, **profile: Any) -> str:
        """Create an account and keep its session token. Returns the userId."""
        data = await self.call(Resource.AUTH, Op.SIGNUP, email=email, password=password, **profile)
        self.token = data["token"]
        return data["userId"]

    async def login(self, email: str, password: str) -> str:
        data = await self.call(Resource.AUTH, Op.LOGIN, email=email, password=password)
        self.token = data["token"]
        return data["userId"]

    async def logout(self) -> None:
        await self.call(Resource.AUTH, Op.LOGOUT)
        self.token = None

    async def delete_account(self) -> None:
        await self.call(Resource.AUTH, Op.DELETE)
        self.token = None

    async def validate(self) -> str:
        return (await self.call(Resource.AUTH, Op.VALIDATE))["userId"]

    # ── Users and data records ────────────────────────────────

    async def get_user_by_id(self, user_id: str) -> Optional[dict]:
        return (await self.call(Resource.DB, Op.GET_USER_BY_ID, userId=user_id))["user"]

    async def get_user_by_email(self, email: str) -> Optional[dict]:
        return (await self.call(Resource.DB, Op.GET_USER_BY_EMAIL, email=email))["user"]

    async def create_record(self, key: str, value: Any) -> str:
        data = await self.call(Resource.DB, Op.CREATE_DATA_RECORD, key=key, value=value)
        return data["recordId"]

    async def get_record(self, record_id: str) -> dict:
        return (await self.call(Resource.DB, Op.GET_DATA_RECORD, recordId=record_id))["record"]

    async def records(self) -> list[dict]:
        return (await self.call(Resource.DB, Op.GET_DATA_RECORDS_BY_USER))["records"]

    async def update_record(self, record_id: str, **updates: Any) -> None:
        await self.call(Resource.DB, Op.UPDATE_DATA_RECORD, recordId=record_id, updates=updates)

    async def delete_record(self, record_id: str) -> None:
        await self.call(Resource.DB, Op.DELETE_DATA_RECORD, recordId=record_id)

    async def db_stats(self) -> dict:
        return (await self.call(Resource.DB, Op.GET_DB_STATS))["stats"]

    async def cleanup_sessions(self) -> int:
        return (await self.call(Resource.DB, Op.CLEANUP_SESSIONS))["removed"]

    # ── Ideas ─────────────────────────────────────────────────

    async def create_idea(self, title: str, description: str, category: str, **fields: Any) -> str:
        data = await self.call(
            Resource.IDEAS, Op.CREATE,
            title=title, description=description, category=category, **fields,
        )
        return data["ideaId"]

    async def get_idea(self, idea_id: str) -> dict:
        return (await self.call(Resource.IDEAS, Op.GET_BY_ID, ideaId=idea_id))["idea"]

    async def ideas_by_creator(self, creator_id: Optional[str] = None) -> list[dict]:
        fields = {"creatorId": creator_id} if creator_id else {}
        return (await self.call(Resource.IDEAS, Op.GET_BY_CREATOR, **fields))["ideas"]

    async def list_ideas(self) -> list[dict]:
        return (await self.call(Resource.IDEAS, Op.GET_ALL))["ideas"]

    async def update_idea(self, idea_id: str, **updates: Any) -> None:
        await self.call(Resource.IDEAS, Op.UPDATE, ideaId=idea_id, updates=updates)

    # ── Projects ──────────────────────────────────────────────

    async def create_project(self, idea_id: str, title: str, description: str, **fields: Any) -> str:
        data = await self.call(
            Resource.PROJECTS, Op.CREATE,
            ideaId=idea_id, title=title, description=description, **fields,
        )
        return data["projectId"]

    async def get_project(self, project_id: str) -> dict:
        return (await self.call(Resource.PROJECTS, Op.GET_BY_ID, projectId=project_id))["project"]

    async def projects_by_executor(self, executor_id: Optional[str] = None) -> list[dict]:
        fields = {"executorId": executor_id} if executor_id else {}
        return (await self.call(Resource.PROJECTS, Op.GET_BY_EXECUTOR, **fields))["projects"]

    async def projects_by_idea(self, idea_id: str) -> list[dict]:
        return (await self.call(Resource.PROJECTS, Op.GET_BY_IDEA, ideaId=idea_id))["projects"]

    async def list_projects(self) -> list[dict]:
        return (await self.call(Resource.PROJECTS, Op.GET_ALL))["projects"]

    async def update_project(self, project_id: str, **updates: Any) -> None:
        await self.call(Resource.PROJECTS, Op.UPDATE, projectId=project_id, updates=updates)

    # ── Funding ───────────────────────────────────────────────

    async def create_funding(
        self,
        project_id: str,
        amount: float,
        equity_percentage: float,
        terms: str = "",
    ) -> str:
        data = await self.call(
            Resource.FUNDING, Op.CREATE,
            projectId=project_id, amount=amount,
            equityPercentage=equity_percentage, terms=terms,
        )
        return data["fundingId"]

    async def get_funding(self, funding_id: str) -> dict:
        return (await self.call(Resource.FUNDING, Op.GET_BY_ID, fundingId=funding_id))["funding"]

    async def funding_by_project(self, project_id: str) -> list[dict]:
        return (await self.call(Resource.FUNDING, Op.GET_BY_PROJECT, projectId=project_id))["fundings"]

    async def funding_by_funder(self, funder_id: Optional[str] = None) -> list[dict]:
        fields = {"funderId": funder_id} if funder_id else {}
        return (await self.call(Resource.FUNDING, Op.GET_BY_FUNDER, **fields))["fundings"]

    async def update_funding(self, funding_id: str, **updates: Any) -> None:
        await self.call(Resource.FUNDING, Op.UPDATE, fundingId=funding_id, updates=updates)

    # ── Profiles ──────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> dict:
        return (await self.call(Resource.PROFILES, Op.GET_BY_ID, userId=user_id))["user"]

    async def update_profile(self, **updates: Any) -> dict:
        return (await self.call(Resource.PROFILES, Op.UPDATE, updates=updates))["user"]

    async def profile_stats(self) -> dict:
        return (await self.call(Resource.PROFILES, Op.GET_STATS))["stats"]
