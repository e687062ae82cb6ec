"""Import all models so SQLAlchemy metadata knows about them."""
from sharebox.models.base import Base
from sharebox.models.container import Container, StoredFile

__all__ = ["Base", "Container", "StoredFile"]
