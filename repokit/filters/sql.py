"""
Filter translation for SQLAlchemy Core.

Renders filter expressions as boolean column expressions against one table.
``ne`` and ``nin`` also select NULL columns so they agree with MongoDB,
where a missing or null field never equals the compared value. A None
inside an ``in`` or ``nin`` list is rendered as an explicit NULL check.
"""

from typing import Any, List

from sqlalchemy import and_, false, or_, true
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import TableClause

from repokit.core.exceptions import ValidationFailure
from repokit.filters.base import FilterTranslator, Operator


class SqlFilterTranslator(FilterTranslator[ColumnElement]):
    """
    Translate filter expressions into SQLAlchemy WHERE clauses.

    Attributes:
        table: Table (or lightweight ``sqlalchemy.table()`` clause) whose
            columns the filter refers to

    Example:
        >>> where = SqlFilterTranslator(users).translate({"age": {"gte": 18}})
        >>> stmt = select(users).where(where)
    """

    backend = "postgres"

    def __init__(self, table: TableClause):
        self.table = table

    def column(self, field: str):
        """Resolve a field name to a column of the bound table."""
        try:
            return self.table.c[field]
        except KeyError:
            raise ValidationFailure(
                f"Unknown column '{field}' for table '{self.table.name}'"
            ) from None

    def equals(self, field: str, value: Any) -> ColumnElement:
        column = self.column(field)
        if value is None:
            return column.is_(None)
        return column == value

    def fragment(self, field: str, operator: Operator, operand: Any) -> ColumnElement:
        column = self.column(field)

        if operator is Operator.EQ:
            return self.equals(field, operand)
        if operator is Operator.NE:
            return column.is_distinct_from(operand)
        if operator is Operator.GT:
            return column > operand
        if operator is Operator.GTE:
            return column >= operand
        if operator is Operator.LT:
            return column < operand
        if operator is Operator.LTE:
            return column <= operand

        if operator in (Operator.IN, Operator.NIN):
            return self._membership(column, operator, operand)

        if operator is Operator.LIKE:
            return column.ilike(operand)

        if operator is Operator.IS_NULL:
            return column.is_(None) if operand else column.is_not(None)
        # NOT_NULL and EXISTS: a relational row always has the column,
        # so presence means "holds a value"
        if operand:
            return column.is_not(None)
        return column.is_(None)

    def _membership(self, column, operator: Operator, operand: List[Any]) -> ColumnElement:
        # NULL never compares equal inside IN, so a listed None becomes IS NULL
        values = [value for value in operand if value is not None]
        has_null = len(values) != len(operand)

        if operator is Operator.IN:
            clauses = [column.in_(values)] if values else []
            if has_null:
                clauses.append(column.is_(None))
            if not clauses:
                return false()
            return clauses[0] if len(clauses) == 1 else or_(*clauses)

        if has_null:
            if not values:
                return column.is_not(None)
            return and_(column.not_in(values), column.is_not(None))
        if not values:
            return true()
        return or_(column.not_in(values), column.is_(None))

    def combine(self, fragments: List[ColumnElement]) -> ColumnElement:
        if not fragments:
            return true()
        if len(fragments) == 1:
            return fragments[0]
        return and_(*fragments)
