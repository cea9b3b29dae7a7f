from .auth import router as auth_router
from .comments import router as comments_router

__all__ = [
    'auth_router',
    'comments_router',
]
