"""SQLAlchemy ORM models."""

from sitepulse.models.base import Base
from sitepulse.models.site import Site
from sitepulse.models.pageview import Pageview
from sitepulse.models.visitor import Visitor

__all__ = [
    "Base",
    "Site",
    "Pageview",
    "Visitor",
]
