"""
Cœur métier de NIM Proxy.
Modules indépendants sans dépendances vers les couches proxy/api.
"""

from .exceptions import (
    NimProxyError,
    ConfigurationError,
    InvalidRequestError,
    UpstreamError,
    StreamingError,
)
from .constants import (
    DEFAULT_NIM_API_BASE,
    DEFAULT_TEMPERATURE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL_ALIASES,
    DEFAULT_THINKING_CAPABLE_MODELS,
    PROBE_TIMEOUT,
    REQUEST_TIMEOUT,
)
from .models import (
    ModelAlias,
    Resolution,
    StreamState,
    UpstreamOk,
    ProbeFailed,
    UpstreamFailure,
    UpstreamResult,
    is_success,
)

__all__ = [
    # Exceptions
    "NimProxyError",
    "ConfigurationError",
    "InvalidRequestError",
    "UpstreamError",
    "StreamingError",
    # Constants
    "DEFAULT_NIM_API_BASE",
    "DEFAULT_TEMPERATURE",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MODEL_ALIASES",
    "DEFAULT_THINKING_CAPABLE_MODELS",
    "PROBE_TIMEOUT",
    "REQUEST_TIMEOUT",
    # Models
    "ModelAlias",
    "Resolution",
    "StreamState",
    "UpstreamOk",
    "ProbeFailed",
    "UpstreamFailure",
    "UpstreamResult",
    "is_success",
]
