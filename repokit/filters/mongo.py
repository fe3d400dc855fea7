"""
Filter translation for MongoDB.

Equality literals pass through verbatim; operator clauses become Mongo query
operators. Fragments on the same field merge into one operator document, and
fall back to a top-level ``$and`` when two fragments need the same key.
"""

from typing import Any, Dict, List

from repokit.filters.base import FilterTranslator, Operator


_COMPARISONS = {
    Operator.EQ: "$eq",
    Operator.NE: "$ne",
    Operator.GT: "$gt",
    Operator.GTE: "$gte",
    Operator.LT: "$lt",
    Operator.LTE: "$lte",
    Operator.IN: "$in",
    Operator.NIN: "$nin",
}


class MongoFilterTranslator(FilterTranslator[Dict[str, Any]]):
    """
    Translate filter expressions into Mongo query documents.

    Example:
        >>> MongoFilterTranslator().translate(
        ...     {"status": "active", "age": {"gte": 18}, "deletedAt": {"isNull": True}}
        ... )
        {'status': 'active', 'age': {'$gte': 18}, 'deletedAt': {'$eq': None}}
    """

    backend = "mongo"

    def equals(self, field: str, value: Any) -> Dict[str, Any]:
        return {field: value}

    def fragment(self, field: str, operator: Operator, operand: Any) -> Dict[str, Any]:
        if operator in _COMPARISONS:
            return {field: {_COMPARISONS[operator]: operand}}

        if operator is Operator.LIKE:
            return {field: {"$regex": operand, "$options": "i"}}

        if operator is Operator.IS_NULL:
            return {field: {"$eq" if operand else "$ne": None}}

        if operator is Operator.NOT_NULL:
            return {field: {"$ne" if operand else "$eq": None}}

        # Operator.EXISTS
        return {field: {"$exists": operand}}

    def combine(self, fragments: List[Dict[str, Any]]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        overflow: List[Dict[str, Any]] = []

        for fragment in fragments:
            (field, condition), = fragment.items()
            current = query.get(field)

            if field not in query:
                query[field] = dict(condition) if _is_operator_doc(condition) else condition
            elif (
                _is_operator_doc(current)
                and _is_operator_doc(condition)
                and not set(current) & set(condition)
            ):
                current.update(condition)
            else:
                overflow.append(fragment)

        if overflow:
            query["$and"] = overflow
        return query


def _is_operator_doc(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(
        isinstance(key, str) and key.startswith("$") for key in value
    )
