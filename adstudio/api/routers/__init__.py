from .auth import router as auth_router
from .billing import router as billing_router
from .callbacks import router as callbacks_router
from .credits import router as credits_router
from .generations import router as generations_router
from .health import router as health_router
from .jobs import router as jobs_router
from .uploads import router as uploads_router

__all__ = [
    "auth_router",
    "billing_router",
    "callbacks_router",
    "credits_router",
    "generations_router",
    "health_router",
    "jobs_router",
    "uploads_router",
]
