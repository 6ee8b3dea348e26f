"""
Document store value types shared by every backend.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"

SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")


@dataclass
class DocumentSnapshot:
    """A document read from a collection."""

    id: str
    """Document identifier within its collection"""

    data: Optional[Dict[str, Any]]
    """Document fields, None when the document does not exist"""

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self.data) if self.data is not None else None


@dataclass
class FieldCondition:
    """A single where() clause."""

    field: str
    op: str
    value: Any
