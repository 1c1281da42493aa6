"""
foundling operation router.

Every operation call that arrives over HTTP comes here.
The router owns the repositories, the SessionManager and the idea
oracle, all built on the one KVStore it is given.

Design:
  - Each (resource, operation) pair maps to one handler method
  - Handlers are async coroutines
  - The caller is resolved from the bearer token once, before dispatch;
    handlers receive the userId or None
  - Inputs are validated with pydantic models before any store access
  - Errors are caught and returned as error replies. They never
    escape to the HTTP layer: unexpected faults are logged in full and
    surfaced as an opaque "Internal server error"
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from foundling.core.entities import to_timestamp
from foundling.core.errors import EmailTakenError, RecordValidationError
from foundling.core.security import hash_password, new_token, verify_password
from foundling.core.vocabulary import FundingStatus, IdeaStatus, ProjectStatus
from foundling.mcp.oracle import IdeaOracle
from foundling.server import schemas
from foundling.server.protocol import (
    ACCESS_DENIED, AUTH_REQUIRED, INTERNAL_ERROR, INVALID_OP,
    ErrorCode, Op, Reply, Request, Resource,
    error, ok,
)
from foundling.store.kv import KVStore
from foundling.store.repo import (
    DataRecordRepo, FundingRepo, IdeaRepo, ProjectRepo, UserRepo,
)
from foundling.store.sessions import SessionManager

logger = logging.getLogger(__name__)


def _describe(e: ValidationError) -> str:
    """First validation problem as a short human-readable message."""
    first = e.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "body"
    if first.get("type") in ("missing", "string_too_short"):
        return f"{field} is required"
    return f"{field}: {first.get('msg', 'invalid value')}"


def _auth_required() -> Reply:
    return error(ErrorCode.UNAUTHORIZED, AUTH_REQUIRED)


def _access_denied() -> Reply:
    return error(ErrorCode.UNAUTHORIZED, ACCESS_DENIED)


def _not_found(thing: str) -> Reply:
    return error(ErrorCode.NOT_FOUND, f"{thing} not found")


# ─────────────────────────────────────────────────────────────
# Router
# ─────────────────────────────────────────────────────────────

class Router:
    """Dispatches operation calls to handler methods.

    All handlers follow the signature:
        async def _handle_*(
            self,
            req: Request,
            caller: Optional[str],   # userId of a live session, or None
        ) -> Reply
    """

    def __init__(
        self,
        store: KVStore,
        *,
        oracle: IdeaOracle | None = None,
        session_ttl: timedelta | None = None,
    ):
        self.store    = store
        self.sessions = SessionManager(store, session_ttl)
        self.users    = UserRepo(store)
        self.ideas    = IdeaRepo(store)
        self.projects = ProjectRepo(store)
        self.funding  = FundingRepo(store)
        self.data     = DataRecordRepo(store)
        self.oracle   = oracle or IdeaOracle()

        R = Resource
        self._dispatch: dict[tuple[str, str], Callable] = {
            # Auth
            (R.AUTH, Op.SIGNUP):   self._handle_signup,
            (R.AUTH, Op.LOGIN):    self._handle_login,
            (R.AUTH, Op.LOGOUT):   self._handle_logout,
            (R.AUTH, Op.DELETE):   self._handle_account_delete,
            (R.AUTH, Op.VALIDATE): self._handle_validate,

            # Raw records
            (R.DB, Op.GET_USER_BY_ID):           self._handle_get_user_by_id,
            (R.DB, Op.GET_USER_BY_EMAIL):        self._handle_get_user_by_email,
            (R.DB, Op.UPDATE_USER):              self._handle_update_user,
            (R.DB, Op.CREATE_DATA_RECORD):       self._handle_data_create,
            (R.DB, Op.GET_DATA_RECORD):          self._handle_data_get,
            (R.DB, Op.GET_DATA_RECORDS_BY_USER): self._handle_data_by_user,
            (R.DB, Op.UPDATE_DATA_RECORD):       self._handle_data_update,
            (R.DB, Op.DELETE_DATA_RECORD):       self._handle_data_delete,
            (R.DB, Op.GET_DB_STATS):             self._handle_db_stats,
            (R.DB, Op.CLEANUP_SESSIONS):         self._handle_cleanup_sessions,

            # Ideas
            (R.IDEAS, Op.CREATE):         self._handle_idea_create,
            (R.IDEAS, Op.GET_BY_ID):      self._handle_idea_get,
            (R.IDEAS, Op.GET_BY_CREATOR): self._handle_idea_by_creator,
            (R.IDEAS, Op.GET_ALL):        self._handle_idea_list,
            (R.IDEAS, Op.UPDATE):         self._handle_idea_update,

            # Projects
            (R.PROJECTS, Op.CREATE):          self._handle_project_create,
            (R.PROJECTS, Op.GET_BY_ID):       self._handle_project_get,
            (R.PROJECTS, Op.GET_BY_EXECUTOR): self._handle_project_by_executor,
            (R.PROJECTS, Op.GET_BY_IDEA):     self._handle_project_by_idea,
            (R.PROJECTS, Op.GET_ALL):         self._handle_project_list,
            (R.PROJECTS, Op.UPDATE):          self._handle_project_update,

            # Funding
            (R.FUNDING, Op.CREATE):         self._handle_funding_create,
            (R.FUNDING, Op.GET_BY_ID):      self._handle_funding_get,
            (R.FUNDING, Op.GET_BY_PROJECT): self._handle_funding_by_project,
            (R.FUNDING, Op.GET_BY_FUNDER):  self._handle_funding_by_funder,
            (R.FUNDING, Op.UPDATE):         self._handle_funding_update,

            # Profiles
            (R.PROFILES, Op.GET_BY_ID): self._handle_profile_get,
            (R.PROFILES, Op.UPDATE):    self._handle_profile_update,
            (R.PROFILES, Op.GET_STATS): self._handle_profile_stats,
        }

    def operations(self, resource: str) -> list[str]:
        return [op for res, op in self._dispatch if res == resource]

    async def dispatch(self, req: Request) -> Reply:
        """Route a request to its handler. Always returns a Reply."""
        handler = self._dispatch.get((req.resource, req.operation))
        if handler is None:
            return error(ErrorCode.INVALID, INVALID_OP)
        try:
            caller = await self.sessions.resolve(req.token)
            return await handler(req, caller)
        except ValidationError as e:
            return error(ErrorCode.INVALID, _describe(e))
        except RecordValidationError as e:
            return error(ErrorCode.INVALID, str(e))
        except EmailTakenError:
            return error(ErrorCode.ALREADY_EXISTS, "User already exists")
        except Exception as e:
            logger.exception(f"Unhandled error in {req.resource} {req.operation!r}: {e}")
            return error(ErrorCode.INTERNAL, INTERNAL_ERROR)

    @staticmethod
    def _input(model: type[BaseModel], req: Request):
        return model.model_validate(req.fields)

    # ─────────────────────────────────────────────────────────
    # Auth
    # ─────────────────────────────────────────────────────────

    async def _open_session(self, user_id: str) -> str:
        token = new_token()
        await self.sessions.create(user_id, token)
        return token

    async def _handle_signup(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.SignupInput, req)
        password_hash = await asyncio.to_thread(hash_password, inp.password)
        user = await self.users.create(inp.email, password_hash, inp.profile())
        token = await self._open_session(user.id)
        return ok(userId=user.id, token=token, user=user.to_public_dict())

    async def _handle_login(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.LoginInput, req)
        user = await self.users.get_by_email(inp.email)
        if user is None or not await asyncio.to_thread(
            verify_password, inp.password, user.password_hash,
        ):
            return error(ErrorCode.UNAUTHORIZED, "Invalid email or password")
        token = await self._open_session(user.id)
        return ok(userId=user.id, token=token, user=user.to_public_dict())

    async def _handle_logout(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        await self.sessions.invalidate(req.token)
        return ok(message="Logged out")

    async def _handle_account_delete(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        if not await self.users.delete(caller):
            return _not_found("User")
        return ok(message="Account deleted")

    async def _handle_validate(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return error(ErrorCode.UNAUTHORIZED, "Invalid or expired session")
        user = await self.users.get_by_id(caller)
        if user is None:
            return _not_found("User")
        return ok(userId=caller, user=user.to_public_dict())

    # ─────────────────────────────────────────────────────────
    # /db — users and data records
    # ─────────────────────────────────────────────────────────

    async def _handle_get_user_by_id(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.UserIdInput, req)
        user = await self.users.get_by_id(inp.user_id)
        return ok(user=user.to_public_dict() if user else None)

    async def _handle_get_user_by_email(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.EmailInput, req)
        user = await self.users.get_by_email(inp.email)
        return ok(user=user.to_public_dict() if user else None)

    async def _handle_update_user(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.UpdatesInput, req)
        user = await self.users.update_profile(caller, inp.updates)
        if user is None:
            return _not_found("User")
        return ok(user=user.to_public_dict())

    async def _handle_data_create(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.DataRecordCreateInput, req)
        record_id = await self.data.create({"userId": caller, "key": inp.key, "value": inp.value})
        return ok(recordId=record_id)

    async def _handle_data_get(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.RecordIdInput, req)
        record = await self.data.get_by_id(inp.record_id)
        if record is None:
            return _not_found("Record")
        if caller is not None and record.user_id != caller:
            return _access_denied()
        return ok(record=record.to_dict())

    async def _handle_data_by_user(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        records = await self.data.get_by_user(caller)
        return ok(records=[r.to_dict() for r in records])

    async def _handle_data_update(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.DataRecordUpdateInput, req)
        record = await self.data.get_by_id(inp.record_id)
        if record is None or record.user_id != caller:
            return _access_denied()
        if not await self.data.update(inp.record_id, inp.updates):
            return _not_found("Record")
        return ok()

    async def _handle_data_delete(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.RecordIdInput, req)
        record = await self.data.get_by_id(inp.record_id)
        if record is None or record.user_id != caller:
            return _access_denied()
        if not await self.data.delete(inp.record_id):
            return _not_found("Record")
        return ok()

    async def _handle_db_stats(self, req: Request, caller: Optional[str]) -> Reply:
        return ok(stats=await self.store.stats())

    async def _handle_cleanup_sessions(self, req: Request, caller: Optional[str]) -> Reply:
        removed = await self.sessions.sweep_expired()
        return ok(message="Expired sessions cleaned up", removed=removed)

    # ─────────────────────────────────────────────────────────
    # Ideas
    # ─────────────────────────────────────────────────────────

    async def _handle_idea_create(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.IdeaCreateInput, req)

        assessed = {}
        if inp.needs_assessment():
            assessment = await self.oracle.validate(
                inp.title, inp.description, inp.category,
                target_market=req.fields.get("targetMarket"),
            )
            assessed = assessment.to_dict()

        def pick(value, key):
            return value if value is not None else assessed[key]

        idea_id = await self.ideas.create({
            "creatorId":             caller,
            "title":                 inp.title,
            "description":           inp.description,
            "category":              inp.category,
            "tags":                  inp.tags,
            "feasibilityScore":      pick(inp.feasibility_score, "feasibilityScore"),
            "marketSize":            pick(inp.market_size, "marketSize"),
            "competitionLevel":      pick(inp.competition_level, "competitionLevel"),
            "developmentComplexity": pick(inp.development_complexity, "developmentComplexity"),
            "fundingRequired":       inp.funding_required,
            "equityOffered":         inp.equity_offered,
            "status":                IdeaStatus.DRAFT.value,
            "nftTokenId":            inp.nft_token_id,
        })
        return ok(ideaId=idea_id)

    async def _handle_idea_get(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.IdeaIdInput, req)
        idea = await self.ideas.get_by_id(inp.idea_id)
        if idea is None:
            return _not_found("Idea")
        return ok(idea=idea.to_dict())

    async def _handle_idea_by_creator(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.CreatorInput, req)
        ideas = await self.ideas.get_by_creator(inp.creator_id or caller)
        return ok(ideas=[i.to_dict() for i in ideas])

    async def _handle_idea_list(self, req: Request, caller: Optional[str]) -> Reply:
        ideas = await self.ideas.get_all()
        return ok(ideas=[i.to_dict() for i in ideas])

    async def _handle_idea_update(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.IdeaUpdateInput, req)
        idea = await self.ideas.get_by_id(inp.idea_id)
        if idea is None:
            return _not_found("Idea")
        if idea.creator_id != caller:
            return _access_denied()
        if not await self.ideas.update(inp.idea_id, inp.updates):
            return _not_found("Idea")
        return ok()

    # ─────────────────────────────────────────────────────────
    # Projects
    # ─────────────────────────────────────────────────────────

    async def _handle_project_create(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.ProjectCreateInput, req)
        project_id = await self.projects.create({
            "ideaId":              inp.idea_id,
            "executorId":          caller,
            "title":               inp.title,
            "description":         inp.description,
            "milestones":          inp.milestones,
            "totalFunding":        inp.total_funding,
            "currentFunding":      0,
            "status":              ProjectStatus.FUNDING.value,
            "startDate":           inp.start_date or to_timestamp(self.store.now()),
            "estimatedCompletion": inp.estimated_completion,
        })
        return ok(projectId=project_id)

    async def _handle_project_get(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.ProjectIdInput, req)
        project = await self.projects.get_by_id(inp.project_id)
        if project is None:
            return _not_found("Project")
        return ok(project=project.to_dict())

    async def _handle_project_by_executor(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.ExecutorInput, req)
        projects = await self.projects.get_by_executor(inp.executor_id or caller)
        return ok(projects=[p.to_dict() for p in projects])

    async def _handle_project_by_idea(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.IdeaIdInput, req)
        projects = await self.projects.get_by_idea(inp.idea_id)
        return ok(projects=[p.to_dict() for p in projects])

    async def _handle_project_list(self, req: Request, caller: Optional[str]) -> Reply:
        projects = await self.projects.get_all()
        return ok(projects=[p.to_dict() for p in projects])

    async def _handle_project_update(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.ProjectUpdateInput, req)
        project = await self.projects.get_by_id(inp.project_id)
        if project is None:
            return _not_found("Project")
        if project.executor_id != caller:
            return _access_denied()
        if not await self.projects.update(inp.project_id, inp.updates):
            return _not_found("Project")
        return ok()

    # ─────────────────────────────────────────────────────────
    # Funding
    # ─────────────────────────────────────────────────────────

    async def _handle_funding_create(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.FundingCreateInput, req)
        funding_id = await self.funding.create({
            "projectId":        inp.project_id,
            "funderId":         caller,
            "amount":           inp.amount,
            "equityPercentage": inp.equity_percentage,
            "terms":            inp.terms,
            "status":           FundingStatus.PENDING.value,
        })
        return ok(fundingId=funding_id)

    async def _handle_funding_get(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.FundingIdInput, req)
        funding = await self.funding.get_by_id(inp.funding_id)
        if funding is None:
            return _not_found("Funding")
        return ok(funding=funding.to_dict())

    async def _handle_funding_by_project(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.ProjectIdInput, req)
        fundings = await self.funding.get_by_project(inp.project_id)
        return ok(fundings=[f.to_dict() for f in fundings])

    async def _handle_funding_by_funder(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.FunderInput, req)
        fundings = await self.funding.get_by_funder(inp.funder_id or caller)
        return ok(fundings=[f.to_dict() for f in fundings])

    async def _handle_funding_update(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        inp = self._input(schemas.FundingUpdateInput, req)
        funding = await self.funding.get_by_id(inp.funding_id)
        if funding is None:
            return _not_found("Funding")
        if funding.funder_id != caller:
            project = await self.projects.get_by_id(funding.project_id)
            if project is None or project.executor_id != caller:
                return _access_denied()
        if not await self.funding.update(inp.funding_id, inp.updates):
            return _not_found("Funding")
        return ok()

    # ─────────────────────────────────────────────────────────
    # Profiles
    # ─────────────────────────────────────────────────────────

    async def _handle_profile_get(self, req: Request, caller: Optional[str]) -> Reply:
        inp = self._input(schemas.UserIdInput, req)
        user = await self.users.get_by_id(inp.user_id)
        if user is None:
            return _not_found("User")
        return ok(user=user.to_public_dict())

    async def _handle_profile_update(self, req: Request, caller: Optional[str]) -> Reply:
        return await self._handle_update_user(req, caller)

    async def _handle_profile_stats(self, req: Request, caller: Optional[str]) -> Reply:
        if caller is None:
            return _auth_required()
        ideas = await self.ideas.get_by_creator(caller)
        projects = await self.projects.get_by_executor(caller)
        return ok(stats={
            "ideas":     len(ideas),
            "projects":  len(projects),
            "funding":   sum(p.current_funding for p in projects),
            "royalties": 0,
        })
