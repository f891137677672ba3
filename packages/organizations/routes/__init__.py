"""Organization API routes."""

from packages.organizations.routes import organizations

__all__ = ["organizations"]
