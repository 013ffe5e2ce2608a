from .auth import router as auth_router
from .account import router as account_router
from .recovery import router as recovery_router
from .profiles import router as profiles_router
from .dev import router as dev_router

__all__ = [
    "auth_router",
    "account_router",
    "recovery_router",
    "profiles_router",
    "dev_router",
]
