from .common import DataResponse, ListResponse, MessageResponse
from .database import MigrateRequest, SwitchRequest, SwitchResponse
from .paper import CitationRequest, PaperSearchResponse

__all__ = [
    "CitationRequest",
    "DataResponse",
    "ListResponse",
    "MessageResponse",
    "MigrateRequest",
    "PaperSearchResponse",
    "SwitchRequest",
    "SwitchResponse",
]
