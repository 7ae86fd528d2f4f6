"""
Advanced filtering: ``{field, operator, value}`` clauses translated to a
predicate tree that compiles to parameterised PostgreSQL over JSONB.
"""

from filters.expr import (
    Predicate, ValueRef, DocField, ColumnField, TrueExpr, Compare, TextMatch,
    IsEmpty, InSet, Not, And,
)
from filters.translator import FilterClause, OPERATORS, parse_filters, translate
