from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from adstudio.api.ratelimit import FixedWindowLimiter
from adstudio.core.config import settings
from adstudio.core.errors import Forbidden, NotFound, Unauthorized
from adstudio.core.messaging import MessagePublisher
from adstudio.core.security import ACCESS_TOKEN, verify_token
from adstudio.models import Job, User, get_db
from adstudio.providers import ProviderRegistry
from adstudio.services import GenerationService, StorageService

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    if credentials is None:
        raise Unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials, token_type=ACCESS_TOKEN)
    if payload is None:
        raise Unauthorized("Invalid or expired token")

    user_id = payload.get("sub")
    if user_id is None:
        raise Unauthorized("Invalid token")

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise Unauthorized("Invalid user ID")

    user = db.get(User, user_uuid)
    if user is None or not user.is_active:
        raise Unauthorized("User not found")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
DatabaseSession = Annotated[Session, Depends(get_db)]


def get_providers(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_publisher(request: Request) -> MessagePublisher:
    return request.app.state.publisher


Providers = Annotated[ProviderRegistry, Depends(get_providers)]
Storage = Annotated[StorageService, Depends(get_storage)]
Publisher = Annotated[MessagePublisher, Depends(get_publisher)]


def get_generation_service(db: DatabaseSession, providers: Providers, publisher: Publisher) -> GenerationService:
    return GenerationService(db, providers, publisher)


Generations = Annotated[GenerationService, Depends(get_generation_service)]


class RateLimit:
    """Per-user request limit for one group of endpoints."""

    def __init__(self, scope: str, per_minute: int) -> None:
        self.scope = scope
        self.limiter = FixedWindowLimiter(per_minute)

    def __call__(self, current_user: CurrentUser) -> None:
        self.limiter.check(f"{self.scope}:{current_user.id}")


generation_rate_limit = RateLimit("generate", settings.generation_rate_limit_per_minute)
upload_rate_limit = RateLimit("upload", settings.upload_rate_limit_per_minute)


def verify_job_ownership(job_id: UUID, current_user: CurrentUser, db: DatabaseSession) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")
    if job.user_id != current_user.id:
        raise Forbidden("Access denied")
    return job


OwnedJob = Annotated[Job, Depends(verify_job_ownership)]
