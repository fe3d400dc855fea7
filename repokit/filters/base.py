"""
Backend-agnostic filter expressions.

A filter expression maps field names to either a literal (equality) or an
operator clause, a mapping from operator token to operand:

    {"status": "active", "age": {"gte": 18, "lt": 65}, "email": {"notNull": True}}

Every condition is AND-combined. Each backend provides a FilterTranslator
subclass rendering the expression into its native predicate.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, Iterator, List, Mapping, Optional, Tuple, TypeVar

from repokit.core.exceptions import UnsupportedOperator, ValidationFailure


NativePredicate = TypeVar("NativePredicate")

FilterExpression = Mapping[str, Any]


class Operator(str, Enum):
    """Normalized operator tokens accepted in operator clauses."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    LIKE = "like"
    IS_NULL = "isNull"
    NOT_NULL = "notNull"
    EXISTS = "exists"


_BY_TOKEN = {op.value: op for op in Operator}

SEQUENCE_OPERATORS = frozenset({Operator.IN, Operator.NIN})
BOOLEAN_OPERATORS = frozenset({Operator.IS_NULL, Operator.NOT_NULL, Operator.EXISTS})


def iter_conditions(
    filter: Optional[FilterExpression],
) -> Iterator[Tuple[str, Optional[Operator], Any]]:
    """
    Flatten a filter expression into ``(field, operator, operand)`` triples.

    The operator is ``None`` for the equality shortcut ``{field: literal}``.
    Operands are validated here so every backend rejects the same input.

    Raises:
        UnsupportedOperator: For tokens outside the Operator set
        ValidationFailure: For malformed expressions or operands
    """
    if filter is None:
        return
    if not isinstance(filter, Mapping):
        raise ValidationFailure(
            f"Filter must be a mapping of field names, got {type(filter).__name__}"
        )

    for field, condition in filter.items():
        if not isinstance(field, str) or not field:
            raise ValidationFailure(f"Filter field names must be non-empty strings: {field!r}")
        if field.startswith("$"):
            raise ValidationFailure(f"Filter field names must not start with '$': {field!r}")

        if not isinstance(condition, Mapping):
            yield field, None, condition
            continue

        if not condition:
            raise ValidationFailure(f"Empty operator clause for field '{field}'")

        for token, operand in condition.items():
            operator = _BY_TOKEN.get(token)
            if operator is None:
                raise UnsupportedOperator(str(token), field)
            yield field, operator, _check_operand(field, operator, operand)


def _check_operand(field: str, operator: Operator, operand: Any) -> Any:
    if operator in SEQUENCE_OPERATORS:
        if isinstance(operand, (str, bytes, Mapping)) or not hasattr(operand, "__iter__"):
            raise ValidationFailure(
                f"Operator '{operator.value}' on field '{field}' needs a sequence operand"
            )
        return list(operand)
    if operator in BOOLEAN_OPERATORS and not isinstance(operand, bool):
        raise ValidationFailure(
            f"Operator '{operator.value}' on field '{field}' needs a boolean operand"
        )
    if operator is Operator.LIKE and not isinstance(operand, str):
        raise ValidationFailure(f"Operator 'like' on field '{field}' needs a string pattern")
    return operand


def equality_fields(filter: Optional[FilterExpression]) -> dict:
    """
    Extract the fields a filter pins to a single value.

    Used to seed inserted records when an upsert finds nothing: literals and
    ``eq`` clauses carry over, range and pattern clauses do not.
    """
    pinned = {}
    for field, operator, operand in iter_conditions(filter):
        if operator is None or operator is Operator.EQ:
            pinned[field] = operand
    return pinned


class FilterTranslator(ABC, Generic[NativePredicate]):
    """
    Renders filter expressions into one backend's native predicate.

    Subclasses implement the equality shortcut, one fragment per operator,
    and the flat AND combining all fragments.
    """

    backend: str = ""

    def translate(self, filter: Optional[FilterExpression]) -> NativePredicate:
        """
        Translate a filter expression.

        Args:
            filter: Filter expression, or None for "match everything"

        Returns:
            Native predicate for this backend

        Raises:
            UnsupportedOperator: Unknown operator token
            ValidationFailure: Malformed expression or unknown field
        """
        fragments: List[Any] = []
        for field, operator, operand in iter_conditions(filter):
            if operator is None:
                fragments.append(self.equals(field, operand))
            else:
                fragments.append(self.fragment(field, operator, operand))
        return self.combine(fragments)

    @abstractmethod
    def equals(self, field: str, value: Any) -> Any:
        """Native equality for the ``{field: literal}`` shortcut."""

    @abstractmethod
    def fragment(self, field: str, operator: Operator, operand: Any) -> Any:
        """Native predicate fragment for one operator token."""

    @abstractmethod
    def combine(self, fragments: List[Any]) -> NativePredicate:
        """AND-combine fragments; an empty list matches every record."""
