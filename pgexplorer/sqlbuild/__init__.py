"""SQL construction helpers: sanitizing, splitting, compiling and templating."""

from __future__ import annotations

from .builder import (
    CountQuery,
    DeleteQuery,
    InsertQuery,
    Predicate,
    RenderedQuery,
    SelectQuery,
    UpdateQuery,
    number_placeholders,
    split_placeholders,
)
from .filters import compile_filters, parse_filter, parse_filters
from .identifiers import InvalidIdentifierError, qualify, require_identifier, sanitize_identifier
from .lint import Diagnostic, DiagnosticSeverity, lint_statement, lint_statements
from .models import (
    FilterDescriptor,
    FilterOperator,
    ListFilter,
    NullFilter,
    RangeFilter,
    ScalarFilter,
    SortDescriptor,
    SortDirection,
    WhereFragment,
)
from .sorting import compile_sorts, parse_sort, parse_sorts
from .splitter import is_select_statement, split_statements
from .templates import DEFAULT_TEMPLATES, QueryTemplate, TemplateCatalog, TemplateError, TemplateKind

__all__ = [
    "CountQuery",
    "DEFAULT_TEMPLATES",
    "DeleteQuery",
    "Diagnostic",
    "DiagnosticSeverity",
    "FilterDescriptor",
    "FilterOperator",
    "InsertQuery",
    "InvalidIdentifierError",
    "ListFilter",
    "NullFilter",
    "Predicate",
    "QueryTemplate",
    "RangeFilter",
    "RenderedQuery",
    "ScalarFilter",
    "SelectQuery",
    "SortDescriptor",
    "SortDirection",
    "TemplateCatalog",
    "TemplateError",
    "TemplateKind",
    "UpdateQuery",
    "WhereFragment",
    "compile_filters",
    "compile_sorts",
    "is_select_statement",
    "lint_statement",
    "lint_statements",
    "number_placeholders",
    "split_placeholders",
    "parse_filter",
    "parse_filters",
    "parse_sort",
    "parse_sorts",
    "qualify",
    "require_identifier",
    "sanitize_identifier",
    "split_statements",
]
