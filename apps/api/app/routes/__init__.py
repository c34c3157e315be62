"""Route modules."""

from .assets import router as assets_router
from .brand import router as brand_router
from .internal import router as internal_router

__all__ = ["assets_router", "brand_router", "internal_router"]
