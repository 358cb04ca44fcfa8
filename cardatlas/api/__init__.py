from cardatlas.api.analytics import router as analytics_router
from cardatlas.api.cards import router as cards_router
from cardatlas.api.health import router as health_router

__all__ = [
    "analytics_router",
    "cards_router",
    "health_router",
]
