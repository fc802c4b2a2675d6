"""ctxpack: deterministic context packs for source repositories."""

from .config import PackConfig, load_config
from .errors import ConfigurationError, CtxPackError, EnumerationError, OptionalToolUnavailable
from .orchestrator import PackOrchestrator

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "CtxPackError",
    "EnumerationError",
    "OptionalToolUnavailable",
    "PackConfig",
    "PackOrchestrator",
    "__version__",
    "load_config",
]
