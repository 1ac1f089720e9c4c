"""Client-side synchronisation of annotations with remote annotation backends."""

from .chunk import AnnotationChunk, AnnotationChunkSource
from .client import AnnotationClient
from .config import SourceParameters, async_complete_parameters, parse_source_url
from .credentials import CredentialsProvider, is_auth_refreshable, user_from_token
from .encoders import EncoderSet, make_encoders
from .endpoints import AnnotationEndpoints
from .errors import (
    AnnotationSyncError,
    AuthError,
    ConflictError,
    DecodeError,
    EncodeError,
    OwnershipError,
    RemoteError,
    TransientServerError,
    ValidationError,
)
from .events import AnnotationSignals, Signal
from .identity import derive_id, is_valid_id, type_of
from .model import Annotation, GeometryType
from .serializer import AnnotationSerializer, SerializedAnnotations
from .source import AnnotationSource
from .store import AnnotationStore, AnnotationStoreRegistry

__all__ = [
    "Annotation",
    "AnnotationChunk",
    "AnnotationChunkSource",
    "AnnotationClient",
    "AnnotationEndpoints",
    "AnnotationSerializer",
    "AnnotationSignals",
    "AnnotationSource",
    "AnnotationStore",
    "AnnotationStoreRegistry",
    "AnnotationSyncError",
    "AuthError",
    "ConflictError",
    "CredentialsProvider",
    "DecodeError",
    "EncodeError",
    "EncoderSet",
    "GeometryType",
    "OwnershipError",
    "RemoteError",
    "SerializedAnnotations",
    "Signal",
    "SourceParameters",
    "TransientServerError",
    "ValidationError",
    "async_complete_parameters",
    "derive_id",
    "is_valid_id",
    "is_auth_refreshable",
    "make_encoders",
    "parse_source_url",
    "type_of",
    "user_from_token",
]
