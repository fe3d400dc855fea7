"""
Filter expressions and their per-backend translators.
"""

from repokit.filters.base import (
    FilterExpression,
    FilterTranslator,
    Operator,
    equality_fields,
    iter_conditions,
)
from repokit.filters.mongo import MongoFilterTranslator
from repokit.filters.sql import SqlFilterTranslator

__all__ = [
    "FilterExpression",
    "FilterTranslator",
    "MongoFilterTranslator",
    "Operator",
    "SqlFilterTranslator",
    "equality_fields",
    "iter_conditions",
]
