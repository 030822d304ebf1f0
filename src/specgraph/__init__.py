"""SpecGraph - capability/enabler specification documents as a live graph."""

__version__ = "0.1.0"

from .config import StoreContext, build_context, load_config
from .events import ChangeBus, ChangeSource, ChangeType, FileChangeEvent
from .exceptions import (
    AccessDeniedError,
    ConfigurationError,
    DocumentNotFoundError,
    SpecGraphError,
    StaleDocumentError,
    TemplateMissingError,
)
from .models import Capability, Dependency, Enabler, EnablerRef, Requirement
from .operations import IntegrityIssue, SpecGraph

__all__ = [
    "__version__",
    "AccessDeniedError",
    "Capability",
    "ChangeBus",
    "ChangeSource",
    "ChangeType",
    "ConfigurationError",
    "Dependency",
    "DocumentNotFoundError",
    "Enabler",
    "EnablerRef",
    "FileChangeEvent",
    "IntegrityIssue",
    "Requirement",
    "SpecGraph",
    "SpecGraphError",
    "StaleDocumentError",
    "StoreContext",
    "TemplateMissingError",
    "build_context",
    "load_config",
]
