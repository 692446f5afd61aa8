from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from paperhub.model import CitationType, Pagination, Paper


# --- Search ---

class PaperSearchResponse(BaseModel):
    status: str = "success"
    data: List[Paper]
    pagination: Pagination


# --- Citations ---

class CitationRequest(BaseModel):
    """Body of POST /api/papers/{id}/citations; accepts camelCase or snake_case keys."""

    target_paper_id: str = Field(alias="targetPaperId", min_length=1)
    context: str = ""
    citation_type: CitationType = Field(default=CitationType.DIRECT, alias="citationType")
    page_number: Optional[int] = Field(default=None, alias="pageNumber", ge=0)

    model_config = {
        "populate_by_name": True,
    }
