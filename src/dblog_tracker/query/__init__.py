"""Templated query loading and execution."""

from dblog_tracker.query.template import (
    DEFAULT_TEMPLATE_ROOT,
    QueryTemplate,
    ResultSet,
    TemplateLoader,
)

__all__ = ['DEFAULT_TEMPLATE_ROOT', 'QueryTemplate', 'ResultSet', 'TemplateLoader']
