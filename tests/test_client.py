"""
Tests for the async HTTP client.

The client talks to the real app through httpx's ASGI transport, so no
port is opened. The app is built around the test's own store.

Run with: pytest tests/test_client.py -v
"""

import httpx
import pytest
import pytest_asyncio

from foundling.client import AsyncClient, ConnectionError, ServerError
from foundling.mcp.oracle import IdeaOracle
from foundling.server.app import create_app


@pytest_asyncio.fixture
async def app(store):
    return create_app(store=store, oracle=IdeaOracle())


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient.connect(
        "http://test", transport=httpx.ASGITransport(app=app),
    ) as c:
        yield c


@pytest_asyncio.fixture
async def other(app):
    async with AsyncClient.connect(
        "http://test", transport=httpx.ASGITransport(app=app),
    ) as c:
        yield c


@pytest.mark.asyncio
class TestAuthFlow:
    async def test_signup_keeps_token(self, client):
        assert not client.is_authenticated
        user_id = await client.signup("ada@x.com", "pw", name="Ada")
        assert client.is_authenticated
        assert await client.validate() == user_id

    async def test_login_logout(self, client):
        user_id = await client.signup("ada@x.com", "pw")
        client.token = None

        assert await client.login("ADA@x.com", "pw") == user_id
        await client.logout()
        assert not client.is_authenticated

    async def test_bad_login_raises(self, client):
        with pytest.raises(ServerError) as exc:
            await client.login("nobody@x.com", "pw")
        assert exc.value.status == 400
        assert exc.value.message == "Invalid email or password"

    async def test_delete_account(self, client):
        user_id = await client.signup("ada@x.com", "pw")
        await client.delete_account()
        assert await client.get_user_by_id(user_id) is None

    async def test_health(self, client):
        assert (await client.health())["status"] == "healthy"


@pytest.mark.asyncio
class TestRecords:
    async def test_data_records(self, client, other):
        user_id = await client.signup("ada@x.com", "pw")
        await other.signup("bob@x.com", "pw")

        record_id = await client.create_record("prefs", {"theme": "dark"})
        assert (await client.get_record(record_id))["value"] == {"theme": "dark"}

        with pytest.raises(ServerError, match="Access denied"):
            await other.get_record(record_id)

        await client.update_record(record_id, value={"theme": "light"})
        records = await client.records()
        assert [r["value"] for r in records] == [{"theme": "light"}]
        assert records[0]["userId"] == user_id

        await client.delete_record(record_id)
        with pytest.raises(ServerError) as exc:
            await client.get_record(record_id)
        assert exc.value.status == 404

    async def test_user_lookup_and_stats(self, client):
        user_id = await client.signup("ada@x.com", "pw")
        assert (await client.get_user_by_email("ada@x.com"))["id"] == user_id
        stats = await client.db_stats()
        assert stats["users"] == 1
        assert await client.cleanup_sessions() == 0


@pytest.mark.asyncio
class TestPlatform:
    async def test_ideas_projects_funding(self, client, other, clock):
        innovator = await client.signup("ada@x.com", "pw")
        funder = await other.signup("bob@x.com", "pw", type="funder")

        idea_id = await client.create_idea("T", "desc", "tools", tags=["ai"])
        assert (await client.get_idea(idea_id))["title"] == "T"

        with pytest.raises(ServerError, match="Access denied"):
            await other.update_idea(idea_id, title="Z")
        await client.update_idea(idea_id, status="active")
        assert (await client.get_idea(idea_id))["status"] == "active"

        assert [i["id"] for i in await client.ideas_by_creator()] == [idea_id]
        assert [i["id"] for i in await other.ideas_by_creator(innovator)] == [idea_id]
        assert len(await other.list_ideas()) == 1

        clock.advance(seconds=1)
        project_id = await client.create_project(idea_id, "Build", "d", totalFunding=1000)
        assert (await other.get_project(project_id))["executorId"] == innovator
        assert [p["id"] for p in await other.projects_by_idea(idea_id)] == [project_id]
        assert [p["id"] for p in await client.projects_by_executor()] == [project_id]
        assert len(await client.list_projects()) == 1
        await client.update_project(project_id, currentFunding=400)

        funding_id = await other.create_funding(project_id, 400, 4.5, terms="net 30")
        assert (await client.get_funding(funding_id))["funderId"] == funder
        assert [f["id"] for f in await client.funding_by_project(project_id)] == [funding_id]
        assert [f["id"] for f in await other.funding_by_funder()] == [funding_id]
        await client.update_funding(funding_id, status="approved")

        stats = await client.profile_stats()
        assert stats == {"ideas": 1, "projects": 1, "funding": 400, "royalties": 0}

    async def test_profiles(self, client):
        user_id = await client.signup("ada@x.com", "pw")
        updated = await client.update_profile(bio="hello", skills=["python"])
        assert updated["bio"] == "hello"
        assert (await client.get_profile(user_id))["skills"] == ["python"]


@pytest.mark.asyncio
class TestTransportErrors:
    async def test_unreachable_server(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with AsyncClient.connect(
            "http://test", transport=httpx.MockTransport(refuse),
        ) as client:
            with pytest.raises(ConnectionError):
                await client.list_ideas()

    async def test_non_json_reply(self):
        def html(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        async with AsyncClient.connect(
            "http://test", transport=httpx.MockTransport(html),
        ) as client:
            with pytest.raises(ServerError) as exc:
                await client.list_ideas()
        assert exc.value.status == 502
