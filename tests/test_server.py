"""
Tests for the operation router and the HTTP app.

Router tests dispatch Request objects directly against a store on a
fake clock. HTTP tests go through FastAPI's TestClient, which runs the
app lifespan and so opens its own store.

Run with: pytest tests/test_server.py -v
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from foundling.mcp.oracle import IdeaOracle
from foundling.server.app import create_app
from foundling.server.protocol import (
    ErrorCode, Op, Reply, Request, Resource, bearer_token,
)
from foundling.server.router import Router


class FakeOracle(IdeaOracle):
    """Enabled oracle whose tool call returns a scripted reply."""

    def __init__(self, reply=None):
        super().__init__("fake-oracle", timeout=1.0)
        self.reply = reply if reply is not None else {
            "feasibilityScore": 82, "marketSize": "Large",
            "competitionLevel": "Low", "developmentComplexity": "Simple",
        }
        self.calls = []

    async def _call(self, arguments):
        self.calls.append(arguments)
        return self.reply


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest_asyncio.fixture
async def router(store, oracle):
    return Router(store, oracle=oracle, session_ttl=timedelta(hours=1))


async def call(router, resource, operation, token=None, **fields) -> Reply:
    return await router.dispatch(Request(resource, operation, fields, token))


async def signup(router, email, password="pw", **profile):
    reply = await call(router, Resource.AUTH, Op.SIGNUP, email=email, password=password, **profile)
    assert reply.success, reply
    return reply["userId"], reply["token"]


# ─────────────────────────────────────────────────────────────
# Protocol
# ─────────────────────────────────────────────────────────────

class TestProtocol:
    def test_operation_field(self):
        req = Request.from_body(Resource.IDEAS, {"operation": "getAll", "x": 1})
        assert req.operation == "getAll"
        assert req.fields == {"x": 1}

    def test_type_is_a_legacy_alias(self):
        req = Request.from_body(Resource.AUTH, {"type": "login", "email": "a@x.com"})
        assert req.operation == "login"
        assert "type" not in req.fields

    def test_type_kept_as_field_when_operation_present(self):
        req = Request.from_body(Resource.AUTH, {"operation": "signup", "type": "funder"})
        assert req.operation == "signup"
        assert req.fields["type"] == "funder"

    def test_body_must_be_an_object(self):
        with pytest.raises(ValueError):
            Request.from_body(Resource.IDEAS, ["getAll"])

    def test_bearer_token(self):
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("bearer  abc ") == "abc"
        assert bearer_token("Basic abc") is None
        assert bearer_token("Bearer ") is None
        assert bearer_token(None) is None

    def test_reply_status(self):
        assert Reply({"success": True}).status == 200
        assert Reply({"success": False}, code=ErrorCode.NOT_FOUND).status == 404
        assert Reply({"success": False}, code=ErrorCode.UNAUTHORIZED).status == 400
        assert Reply({"success": False}, code=ErrorCode.INTERNAL).status == 500


# ─────────────────────────────────────────────────────────────
# Auth
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestAuth:
    async def test_signup_returns_session(self, router):
        reply = await call(router, Resource.AUTH, Op.SIGNUP,
                           email="Ada@X.com", password="pw", name="Ada", type="funder")
        assert reply.success
        assert reply["token"]
        assert reply["user"]["email"] == "ada@x.com"
        assert reply["user"]["type"] == "funder"
        assert "passwordHash" not in reply["user"]
        assert await router.sessions.resolve(reply["token"]) == reply["userId"]

    async def test_duplicate_signup(self, router):
        await signup(router, "a@x.com")
        reply = await call(router, Resource.AUTH, Op.SIGNUP, email=" A@x.com", password="pw")
        assert reply.code == ErrorCode.ALREADY_EXISTS
        assert reply["error"] == "User already exists"
        assert await router.store["users"].count() == 1

    async def test_signup_requires_password(self, router):
        reply = await call(router, Resource.AUTH, Op.SIGNUP, email="a@x.com")
        assert reply.code == ErrorCode.INVALID
        assert reply["error"] == "password is required"

    async def test_login(self, router):
        user_id, _ = await signup(router, "a@x.com", password="s3cret")
        reply = await call(router, Resource.AUTH, Op.LOGIN, email="A@X.COM", password="s3cret")
        assert reply.success
        assert reply["userId"] == user_id
        assert await router.sessions.resolve(reply["token"]) == user_id

    @pytest.mark.parametrize("email,password", [("a@x.com", "wrong"), ("nobody@x.com", "pw")])
    async def test_bad_login(self, router, email, password):
        await signup(router, "a@x.com")
        reply = await call(router, Resource.AUTH, Op.LOGIN, email=email, password=password)
        assert reply.code == ErrorCode.UNAUTHORIZED
        assert reply["error"] == "Invalid email or password"

    async def test_validate(self, router):
        user_id, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.AUTH, Op.VALIDATE, token)
        assert reply["userId"] == user_id

        reply = await call(router, Resource.AUTH, Op.VALIDATE, "bogus")
        assert reply["error"] == "Invalid or expired session"

    async def test_session_expires(self, router, clock):
        _, token = await signup(router, "a@x.com")
        clock.advance(hours=1)
        reply = await call(router, Resource.AUTH, Op.VALIDATE, token)
        assert not reply.success

    async def test_logout(self, router):
        _, token = await signup(router, "a@x.com")
        assert (await call(router, Resource.AUTH, Op.LOGOUT, token)).success
        assert not (await call(router, Resource.AUTH, Op.VALIDATE, token)).success
        reply = await call(router, Resource.AUTH, Op.LOGOUT, token)
        assert reply["error"] == "Authentication required"

    async def test_delete_account_cascades(self, router):
        user_id, token = await signup(router, "a@x.com")
        await call(router, Resource.DB, Op.CREATE_DATA_RECORD, token, key="k", value=1)

        assert (await call(router, Resource.AUTH, Op.DELETE, token)).success

        reply = await call(router, Resource.DB, Op.GET_USER_BY_ID, userId=user_id)
        assert reply.success and reply["user"] is None
        assert not (await call(router, Resource.AUTH, Op.VALIDATE, token)).success
        stats = await router.store.stats()
        assert stats["users"] == stats["sessions"] == stats["data"] == stats["email_index"] == 0

        # the email is free again
        await signup(router, "a@x.com")

    async def test_unknown_operation(self, router):
        for operation in ("explode", None):
            reply = await call(router, Resource.AUTH, operation)
            assert reply.code == ErrorCode.INVALID
            assert reply["error"] == "Invalid operation type"


# ─────────────────────────────────────────────────────────────
# /db
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestDb:
    async def test_user_lookups(self, router):
        user_id, _ = await signup(router, "a@x.com", name="Ada")
        by_id = await call(router, Resource.DB, Op.GET_USER_BY_ID, userId=user_id)
        by_email = await call(router, Resource.DB, Op.GET_USER_BY_EMAIL, email="A@x.com")
        assert by_id["user"] == by_email["user"]
        assert by_id["user"]["name"] == "Ada"

        missing = await call(router, Resource.DB, Op.GET_USER_BY_EMAIL, email="b@x.com")
        assert missing.success and missing["user"] is None

    async def test_update_user(self, router, clock):
        _, token = await signup(router, "a@x.com")
        clock.advance(seconds=5)
        reply = await call(router, Resource.DB, Op.UPDATE_USER, token,
                           updates={"bio": "hello", "skills": ["python"]})
        assert reply.success
        assert reply["user"]["bio"] == "hello"
        assert reply["user"]["updatedAt"] != reply["user"]["createdAt"]

    async def test_data_record_lifecycle(self, router):
        owner_id, owner = await signup(router, "a@x.com")
        _, other = await signup(router, "b@x.com")

        reply = await call(router, Resource.DB, Op.CREATE_DATA_RECORD, owner,
                           key="prefs", value={"theme": "dark"})
        record_id = reply["recordId"]

        got = await call(router, Resource.DB, Op.GET_DATA_RECORD, owner, recordId=record_id)
        assert got["record"]["value"] == {"theme": "dark"}
        assert got["record"]["userId"] == owner_id

        anonymous = await call(router, Resource.DB, Op.GET_DATA_RECORD, recordId=record_id)
        assert anonymous.success

        denied = await call(router, Resource.DB, Op.GET_DATA_RECORD, other, recordId=record_id)
        assert denied["error"] == "Access denied"

        denied = await call(router, Resource.DB, Op.UPDATE_DATA_RECORD, other,
                            recordId=record_id, updates={"value": "stolen"})
        assert denied["error"] == "Access denied"

        updated = await call(router, Resource.DB, Op.UPDATE_DATA_RECORD, owner,
                             recordId=record_id, updates={"value": None})
        assert updated.success

        listed = await call(router, Resource.DB, Op.GET_DATA_RECORDS_BY_USER, owner)
        assert [r["value"] for r in listed["records"]] == [None]

        assert (await call(router, Resource.DB, Op.DELETE_DATA_RECORD, owner,
                           recordId=record_id)).success
        gone = await call(router, Resource.DB, Op.DELETE_DATA_RECORD, owner, recordId=record_id)
        assert gone["error"] == "Access denied"

        missing = await call(router, Resource.DB, Op.GET_DATA_RECORD, owner, recordId=record_id)
        assert missing.code == ErrorCode.NOT_FOUND
        assert missing["error"] == "Record not found"

    async def test_unstorable_value_is_invalid(self, router):
        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.DB, Op.CREATE_DATA_RECORD, token, key="k", value=2 ** 70)
        assert reply.code == ErrorCode.INVALID
        assert reply.status == 400
        assert reply["error"].startswith("Invalid data record")
        assert await router.store["data"].count() == 0

    async def test_data_record_requires_auth(self, router):
        reply = await call(router, Resource.DB, Op.CREATE_DATA_RECORD, key="k", value=1)
        assert reply["error"] == "Authentication required"

    async def test_db_stats(self, router):
        await signup(router, "a@x.com")
        reply = await call(router, Resource.DB, Op.GET_DB_STATS)
        assert reply["stats"]["users"] == 1
        assert reply["stats"]["sessions"] == 1
        assert reply["stats"]["email_index"] == 1

    async def test_cleanup_expired_sessions(self, router, clock):
        await signup(router, "a@x.com")
        await signup(router, "b@x.com")
        clock.advance(hours=2)
        reply = await call(router, Resource.DB, Op.CLEANUP_SESSIONS)
        assert reply["removed"] == 2
        assert await router.store["sessions"].count() == 0


# ─────────────────────────────────────────────────────────────
# Ideas
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestIdeas:
    async def test_update_by_non_creator_is_denied(self, router):
        u1, t1 = await signup(router, "a@x.com")
        _, t2 = await signup(router, "b@x.com")

        created = await call(router, Resource.IDEAS, Op.CREATE, t1,
                             title="T", description="d", category="tools")
        idea_id = created["ideaId"]
        assert idea_id

        denied = await call(router, Resource.IDEAS, Op.UPDATE, t2,
                            ideaId=idea_id, updates={"title": "Z"})
        assert denied == {"success": False, "error": "Access denied"}

        idea = (await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId=idea_id))["idea"]
        assert idea["title"] == "T"
        assert idea["creatorId"] == u1

        allowed = await call(router, Resource.IDEAS, Op.UPDATE, t1,
                             ideaId=idea_id, updates={"title": "Z", "creatorId": "someone"})
        assert allowed.success
        idea = (await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId=idea_id))["idea"]
        assert idea["title"] == "Z" and idea["creatorId"] == u1

    async def test_create_is_scored_by_oracle(self, router, oracle):
        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                           title="T", description="d", category="tools", targetMarket="SMB")
        idea = (await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId=reply["ideaId"]))["idea"]
        assert idea["feasibilityScore"] == 82
        assert idea["marketSize"] == "Large"
        assert idea["status"] == "draft"
        assert oracle.calls[0]["target_market"] == "SMB"

    async def test_supplied_assessment_skips_oracle(self, router, oracle):
        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                           title="T", description="d", category="tools",
                           feasibilityScore=10, marketSize="Tiny",
                           competitionLevel="High", developmentComplexity="Hard")
        idea = (await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId=reply["ideaId"]))["idea"]
        assert idea["feasibilityScore"] == 10
        assert oracle.calls == []

    async def test_disabled_oracle_falls_back(self, store):
        router = Router(store, oracle=IdeaOracle())
        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                           title="T", description="d", category="tools")
        idea = (await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId=reply["ideaId"]))["idea"]
        assert idea["feasibilityScore"] == 65
        assert idea["developmentComplexity"] == "Moderate"

    async def test_create_requires_auth_and_fields(self, router):
        reply = await call(router, Resource.IDEAS, Op.CREATE, title="T")
        assert reply["error"] == "Authentication required"

        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                           title="", description="d", category="c")
        assert reply.code == ErrorCode.INVALID
        assert reply["error"] == "title is required"

    async def test_oversized_number_is_invalid(self, router):
        _, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                           title="T", description="d", category="c", fundingRequired=10 ** 30)
        assert reply.code == ErrorCode.INVALID
        assert reply.status == 400
        assert "out of range" in reply["error"]
        assert await router.store["ideas"].count() == 0

    async def test_update_rejects_bad_values(self, router):
        _, token = await signup(router, "a@x.com")
        idea_id = (await call(router, Resource.IDEAS, Op.CREATE, token,
                              title="T", description="d", category="c"))["ideaId"]
        reply = await call(router, Resource.IDEAS, Op.UPDATE, token,
                           ideaId=idea_id, updates={"feasibilityScore": 500})
        assert reply.code == ErrorCode.INVALID
        assert reply["error"].startswith("Invalid idea")

    async def test_listing_newest_first(self, router, clock):
        u1, t1 = await signup(router, "a@x.com")
        _, t2 = await signup(router, "b@x.com")
        ids = []
        for token, title in ((t1, "first"), (t2, "second"), (t1, "third")):
            clock.advance(seconds=1)
            reply = await call(router, Resource.IDEAS, Op.CREATE, token,
                               title=title, description="d", category="c")
            ids.append(reply["ideaId"])

        everything = await call(router, Resource.IDEAS, Op.GET_ALL)
        assert [i["title"] for i in everything["ideas"]] == ["third", "second", "first"]

        mine = await call(router, Resource.IDEAS, Op.GET_BY_CREATOR, t1)
        assert [i["id"] for i in mine["ideas"]] == [ids[2], ids[0]]

        theirs = await call(router, Resource.IDEAS, Op.GET_BY_CREATOR, t2, creatorId=u1)
        assert len(theirs["ideas"]) == 2

    async def test_missing_idea(self, router):
        reply = await call(router, Resource.IDEAS, Op.GET_BY_ID, ideaId="idea_nope")
        assert reply.code == ErrorCode.NOT_FOUND
        assert reply["error"] == "Idea not found"

    async def test_internal_fault_is_opaque(self, router, monkeypatch):
        async def explode():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(router.ideas, "get_all", explode)
        reply = await call(router, Resource.IDEAS, Op.GET_ALL)
        assert reply.code == ErrorCode.INTERNAL
        assert reply["error"] == "Internal server error"


# ─────────────────────────────────────────────────────────────
# Projects and funding
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestProjectsAndFunding:
    async def setup_project(self, router):
        innovator, t_innovator = await signup(router, "innovator@x.com")
        executor, t_executor = await signup(router, "executor@x.com", type="executor")
        funder, t_funder = await signup(router, "funder@x.com", type="funder")
        idea_id = (await call(router, Resource.IDEAS, Op.CREATE, t_innovator,
                              title="T", description="d", category="c"))["ideaId"]
        project_id = (await call(
            router, Resource.PROJECTS, Op.CREATE, t_executor,
            ideaId=idea_id, title="Build it", description="d", totalFunding=5000,
            milestones=[{"title": "MVP", "fundingAmount": 2000, "dueDate": "2026-06-01"}],
        ))["projectId"]
        return {
            "idea": idea_id, "project": project_id,
            "executor": (executor, t_executor), "funder": (funder, t_funder),
            "innovator": (innovator, t_innovator),
        }

    async def test_project_create(self, router, clock):
        ctx = await self.setup_project(router)
        project = (await call(router, Resource.PROJECTS, Op.GET_BY_ID,
                              projectId=ctx["project"]))["project"]
        assert project["executorId"] == ctx["executor"][0]
        assert project["status"] == "funding"
        assert project["currentFunding"] == 0
        assert project["startDate"] == project["createdAt"]
        assert project["milestones"][0]["id"].startswith("milestone_")
        assert project["milestones"][0]["status"] == "pending"

    async def test_project_queries(self, router):
        ctx = await self.setup_project(router)
        by_idea = await call(router, Resource.PROJECTS, Op.GET_BY_IDEA, ideaId=ctx["idea"])
        assert [p["id"] for p in by_idea["projects"]] == [ctx["project"]]

        mine = await call(router, Resource.PROJECTS, Op.GET_BY_EXECUTOR, ctx["executor"][1])
        assert len(mine["projects"]) == 1

        none = await call(router, Resource.PROJECTS, Op.GET_BY_EXECUTOR, ctx["funder"][1])
        assert none["projects"] == []

        assert len((await call(router, Resource.PROJECTS, Op.GET_ALL))["projects"]) == 1

    async def test_project_update_is_executor_only(self, router):
        ctx = await self.setup_project(router)
        denied = await call(router, Resource.PROJECTS, Op.UPDATE, ctx["innovator"][1],
                            projectId=ctx["project"], updates={"status": "cancelled"})
        assert denied["error"] == "Access denied"

        allowed = await call(router, Resource.PROJECTS, Op.UPDATE, ctx["executor"][1],
                             projectId=ctx["project"],
                             updates={"status": "in-progress", "currentFunding": 1500})
        assert allowed.success

    async def test_funding_flow(self, router):
        ctx = await self.setup_project(router)
        funder_id, t_funder = ctx["funder"]

        reply = await call(router, Resource.FUNDING, Op.CREATE, t_funder,
                           projectId=ctx["project"], amount=1000, equityPercentage=5,
                           terms="net 30")
        funding_id = reply["fundingId"]

        funding = (await call(router, Resource.FUNDING, Op.GET_BY_ID,
                              fundingId=funding_id))["funding"]
        assert funding["funderId"] == funder_id
        assert funding["status"] == "pending"

        by_project = await call(router, Resource.FUNDING, Op.GET_BY_PROJECT,
                                projectId=ctx["project"])
        assert [f["id"] for f in by_project["fundings"]] == [funding_id]
        by_funder = await call(router, Resource.FUNDING, Op.GET_BY_FUNDER, t_funder)
        assert [f["id"] for f in by_funder["fundings"]] == [funding_id]

        stranger = await call(router, Resource.FUNDING, Op.UPDATE, ctx["innovator"][1],
                              fundingId=funding_id, updates={"status": "approved"})
        assert stranger["error"] == "Access denied"

        executor = await call(router, Resource.FUNDING, Op.UPDATE, ctx["executor"][1],
                              fundingId=funding_id, updates={"status": "approved"})
        assert executor.success

        funder = await call(router, Resource.FUNDING, Op.UPDATE, t_funder,
                            fundingId=funding_id, updates={"terms": "net 60"})
        assert funder.success

        funding = (await call(router, Resource.FUNDING, Op.GET_BY_ID,
                              fundingId=funding_id))["funding"]
        assert funding["status"] == "approved" and funding["terms"] == "net 60"

    @pytest.mark.parametrize("amount,equity", [(0, 5), (-1, 5), (100, 0), (100, 101)])
    async def test_funding_bounds(self, router, amount, equity):
        ctx = await self.setup_project(router)
        reply = await call(router, Resource.FUNDING, Op.CREATE, ctx["funder"][1],
                           projectId=ctx["project"], amount=amount, equityPercentage=equity)
        assert reply.code == ErrorCode.INVALID


# ─────────────────────────────────────────────────────────────
# Profiles
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestProfiles:
    async def test_get_profile(self, router):
        user_id, _ = await signup(router, "a@x.com", name="Ada")
        reply = await call(router, Resource.PROFILES, Op.GET_BY_ID, userId=user_id)
        assert reply["user"]["name"] == "Ada"

        missing = await call(router, Resource.PROFILES, Op.GET_BY_ID, userId="user_nope")
        assert missing.code == ErrorCode.NOT_FOUND

    async def test_email_change_reindexes(self, router):
        user_id, token = await signup(router, "a@x.com")
        reply = await call(router, Resource.PROFILES, Op.UPDATE, token,
                           updates={"email": "New@X.com"})
        assert reply["user"]["email"] == "new@x.com"

        old = await call(router, Resource.DB, Op.GET_USER_BY_EMAIL, email="a@x.com")
        new = await call(router, Resource.DB, Op.GET_USER_BY_EMAIL, email="new@x.com")
        assert old["user"] is None
        assert new["user"]["id"] == user_id

    async def test_email_change_collision(self, router):
        await signup(router, "a@x.com")
        _, token = await signup(router, "b@x.com")
        reply = await call(router, Resource.PROFILES, Op.UPDATE, token,
                           updates={"email": "a@x.com"})
        assert reply.code == ErrorCode.ALREADY_EXISTS

    async def test_stats(self, router):
        _, token = await signup(router, "a@x.com")
        idea_id = (await call(router, Resource.IDEAS, Op.CREATE, token,
                              title="T", description="d", category="c"))["ideaId"]
        for funded in (100, 250):
            project_id = (await call(router, Resource.PROJECTS, Op.CREATE, token,
                                     ideaId=idea_id, title="P", description="d"))["projectId"]
            await call(router, Resource.PROJECTS, Op.UPDATE, token,
                       projectId=project_id, updates={"currentFunding": funded})

        reply = await call(router, Resource.PROFILES, Op.GET_STATS, token)
        assert reply["stats"] == {"ideas": 1, "projects": 2, "funding": 350, "royalties": 0}


# ─────────────────────────────────────────────────────────────
# HTTP
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def http(db_url):
    app = create_app(db_url, oracle=IdeaOracle(), session_ttl=timedelta(hours=1))
    with TestClient(app) as client:
        yield client


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestHttp:
    def test_health(self, http):
        resp = http.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert "timestamp" in resp.json()

    def test_signup_then_authenticated_call(self, http):
        resp = http.post("/auth", json={"operation": "signup", "email": "a@x.com", "password": "pw"})
        assert resp.status_code == 200
        token = resp.json()["token"]

        resp = http.post("/api/ideas", headers=auth(token),
                         json={"operation": "create", "title": "T",
                               "description": "d", "category": "c"})
        assert resp.status_code == 200
        idea_id = resp.json()["ideaId"]

        resp = http.post("/api/ideas", json={"operation": "getById", "ideaId": idea_id})
        assert resp.json()["idea"]["title"] == "T"

    def test_legacy_type_field(self, http):
        resp = http.post("/auth", json={"type": "signup", "email": "a@x.com", "password": "pw"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_error_statuses(self, http):
        resp = http.post("/api/ideas", json={"operation": "getById", "ideaId": "idea_nope"})
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Idea not found"}

        resp = http.post("/api/ideas", json={"operation": "create", "title": "T"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Authentication required"

        resp = http.post("/api/ideas", json={"operation": "fly"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid operation type"

    def test_oversized_numbers_are_client_errors(self, http):
        resp = http.post("/auth", json={"operation": "signup", "email": "a@x.com", "password": "pw"})
        token = resp.json()["token"]

        resp = http.post("/db", headers=auth(token),
                         json={"operation": "createDataRecord", "key": "k", "value": 2 ** 70})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

        resp = http.post("/api/ideas", headers=auth(token),
                         json={"operation": "create", "title": "T", "description": "d",
                               "category": "c", "fundingRequired": 10 ** 30})
        assert resp.status_code == 400
        assert "out of range" in resp.json()["error"]

    def test_invalid_body(self, http):
        resp = http.post("/db", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request body"}

        resp = http.post("/db", json=["getDBStats"])
        assert resp.status_code == 400

    def test_unknown_path(self, http):
        resp = http.post("/api/nothing", json={"operation": "getAll"})
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Endpoint not found"}

    def test_wrong_method(self, http):
        resp = http.get("/api/ideas")
        assert resp.status_code == 405
        assert resp.json() == {"success": False, "error": "Method not allowed"}

    def test_internal_error(self, http, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(http.app.state.router.store, "stats", explode)
        resp = http.post("/db", json={"operation": "getDBStats"})
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Internal server error"}

    def test_cors_preflight(self, http):
        resp = http.options("/api/ideas", headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
        })
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
