"""Access plane FastAPI application."""

from .main import AppDependencies, create_app
from .settings import AccessPlaneSettings

__all__ = ["AppDependencies", "create_app", "AccessPlaneSettings"]
