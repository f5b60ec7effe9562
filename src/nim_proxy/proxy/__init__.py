"""
Logique de proxy HTTP vers l'API NIM.
"""

from .client import UpstreamClient, create_upstream_client, extract_error_message
from .resolver import AliasTable, ModelResolver, fallback_model
from .transformers import (
    RequestTranslator,
    ResponseBuilder,
    split_inline_reasoning,
    wrap_reasoning,
)
from .stream import StreamTransformer, stream_generator, format_event

__all__ = [
    "UpstreamClient",
    "create_upstream_client",
    "extract_error_message",
    "AliasTable",
    "ModelResolver",
    "fallback_model",
    "RequestTranslator",
    "ResponseBuilder",
    "split_inline_reasoning",
    "wrap_reasoning",
    "StreamTransformer",
    "stream_generator",
    "format_event",
]
