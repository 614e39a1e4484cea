"""Built-in rule units, one module per category."""

from .async_ops import AsyncRule
from .base import Rule
from .caching import CachingRule
from .envelope import EnvelopeRule
from .extensions import ExtensionsRule
from .http import HttpRule
from .http_semantics import HttpSemanticsRule
from .i18n import I18nRule
from .naming import NamingRule
from .pagination import PaginationRule
from .security import SecurityRule
from .structure import StructureRule
from .webhooks import WebhooksRule

BUILTIN_RULES: tuple[type[Rule], ...] = (
    StructureRule,
    NamingRule,
    SecurityRule,
    PaginationRule,
    HttpRule,
    HttpSemanticsRule,
    CachingRule,
    EnvelopeRule,
    AsyncRule,
    WebhooksRule,
    I18nRule,
    ExtensionsRule,
)

__all__ = [
    "BUILTIN_RULES",
    "AsyncRule",
    "CachingRule",
    "EnvelopeRule",
    "ExtensionsRule",
    "HttpRule",
    "HttpSemanticsRule",
    "I18nRule",
    "NamingRule",
    "PaginationRule",
    "Rule",
    "SecurityRule",
    "StructureRule",
    "WebhooksRule",
]
