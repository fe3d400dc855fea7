"""
Repository configuration and pagination models.

Options are frozen pydantic models: once a repository is built its
behavior cannot change underneath it.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import column as sql_column
from sqlalchemy import table as sql_table
from sqlalchemy.sql.expression import TableClause

from repokit.core.exceptions import ValidationFailure
from repokit.repositories.hooks import Hooks


SortSpec = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]

_ASCENDING = {"asc", "ascending", 1}
_DESCENDING = {"desc", "descending", -1}


class RepositoryOptions(BaseModel):
    """
    Backend-independent repository options.

    Field-name options left as None take the backend's default:
    ``_id``/``createdAt``/``updatedAt``/``deletedAt`` for MongoDB and
    ``id``/``created_at``/``updated_at``/``deleted_at`` for SQL.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    primary_key: Optional[str] = None
    timestamps: bool = False
    created_at_field: Optional[str] = None
    updated_at_field: Optional[str] = None
    soft_delete: bool = False
    soft_delete_field: Optional[str] = None
    hooks: Hooks = Field(default_factory=Hooks)
    default_limit: Optional[int] = Field(default=None, ge=1)


class MongoRepositoryOptions(RepositoryOptions):
    """
    Options for a repository over one MongoDB collection.

    Attributes:
        collection: Collection name
        coerce_object_id: Convert string ids to ObjectId for ``_id`` lookups
    """

    collection: str
    coerce_object_id: bool = True


class SqlRepositoryOptions(RepositoryOptions):
    """
    Options for a repository over one SQL table.

    Attributes:
        table: A SQLAlchemy Table (e.g. ``Model.__table__``) or a table name
        columns: Column names, required when ``table`` is a name
    """

    table: Union[str, TableClause]
    columns: Optional[List[str]] = None

    def resolve_table(self) -> TableClause:
        """Return the table clause statements are built against."""
        if isinstance(self.table, TableClause):
            return self.table
        if not self.columns:
            raise ValidationFailure(
                f"Table '{self.table}' was given by name; pass its columns "
                f"or a reflected Table (see PostgresAdapter.reflect)"
            )
        return sql_table(self.table, *[sql_column(name) for name in self.columns])


def normalize_sort(sort: Optional[SortSpec]) -> List[Tuple[str, bool]]:
    """
    Normalize a sort specification to ``[(field, ascending), ...]``.

    Accepts ``{"age": "desc", "name": 1}`` or ``[("age", -1), ("name", "asc")]``.

    Raises:
        ValidationFailure: For unknown directions or malformed specs
    """
    if not sort:
        return []

    items = sort.items() if isinstance(sort, Mapping) else sort
    normalized = []
    for item in items:
        try:
            field, direction = item
        except (TypeError, ValueError):
            raise ValidationFailure(f"Malformed sort entry: {item!r}") from None

        key = direction.lower() if isinstance(direction, str) else direction
        if key in _ASCENDING:
            normalized.append((field, True))
        elif key in _DESCENDING:
            normalized.append((field, False))
        else:
            raise ValidationFailure(f"Unknown sort direction {direction!r} for field '{field}'")
    return normalized


class PageRequest(BaseModel):
    """
    Pagination request.

    Out-of-range values are accepted here and clamped by ``find_page``:
    ``page < 1`` reads page 1, ``limit < 1`` uses the repository default.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    page: int = 1
    limit: Optional[int] = None
    sort: Optional[Any] = None
    filter: Optional[Dict[str, Any]] = None


class PageResult(BaseModel):
    """One page of entities plus totals for the whole matching set."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: List[Dict[str, Any]], total: int, page: int, limit: int) -> "PageResult":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )
