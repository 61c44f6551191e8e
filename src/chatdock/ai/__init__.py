"""Completion client, stream decoding and connection resolution."""

from .client import CompletionClient
from .connection import ConnectionResolver, ConnectionSettings
from .errors import CompletionError, ErrorCode
from .models import BUILTIN_MODELS, ModelCatalog
from .stream_decoder import StreamDecoder, StreamOutcome

__all__ = [
    "BUILTIN_MODELS",
    "CompletionClient",
    "CompletionError",
    "ConnectionResolver",
    "ConnectionSettings",
    "ErrorCode",
    "ModelCatalog",
    "StreamDecoder",
    "StreamOutcome",
]
