from bikecli.models.base import Base
from bikecli.models.document import Document

__all__ = [
    "Base",
    "Document",
]
