from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_paper_repo
from api.schemas.common import DataResponse, ListResponse, MessageResponse
from api.schemas.paper import PaperSearchResponse
from paperhub.database.base import PaperRepository
from paperhub.database.errors import coerce
from paperhub.model import Paper, PaperCreate, PaperUpdate, SearchParams, SortKey, SortOrder

router = APIRouter(prefix="/api/papers", tags=["papers"])


@router.get("", response_model=ListResponse[Paper])
def list_papers(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    repo: PaperRepository = Depends(get_paper_repo),
):
    """List papers, newest first."""
    return ListResponse[Paper].of(repo.find_all(limit=limit, offset=offset))


@router.post("", response_model=DataResponse[Paper], status_code=201)
def create_paper(
    body: PaperCreate,
    repo: PaperRepository = Depends(get_paper_repo),
):
    return DataResponse[Paper](data=repo.create(body))


@router.get("/search", response_model=PaperSearchResponse)
def search_papers(
    query: Optional[str] = Query(default=None, alias="q"),
    authors: List[str] = Query(default=[]),
    keywords: List[str] = Query(default=[]),
    journal: Optional[str] = Query(default=None),
    conference: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None, alias="dateFrom"),
    date_to: Optional[date] = Query(default=None, alias="dateTo"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=1000),
    sort_by: Optional[SortKey] = Query(default=None, alias="sortBy"),
    sort_order: Optional[SortOrder] = Query(default=None, alias="sortOrder"),
    repo: PaperRepository = Depends(get_paper_repo),
):
    """Filtered, paginated search over title, abstract and keywords."""
    params = coerce(
        SearchParams,
        {
            "query": query,
            "authors": authors,
            "keywords": keywords,
            "journal": journal,
            "conference": conference,
            "date_from": date_from,
            "date_to": date_to,
            "page": page,
            "limit": limit,
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
    )
    result = repo.search(params)
    return PaperSearchResponse(data=result.data, pagination=result.pagination)


@router.get("/{paper_id}", response_model=DataResponse[Paper])
def get_paper(
    paper_id: str,
    repo: PaperRepository = Depends(get_paper_repo),
):
    paper = repo.find_by_id(paper_id)
    if not paper:
        raise HTTPException(status_code=404, detail="Paper not found")
    return DataResponse[Paper](data=paper)


@router.put("/{paper_id}", response_model=DataResponse[Paper])
def update_paper(
    paper_id: str,
    body: PaperUpdate,
    repo: PaperRepository = Depends(get_paper_repo),
):
    """Partial update; only the fields present in the body change."""
    paper = repo.update(paper_id, body)
    if not paper:
        raise HTTPException(status_code=404, detail="Paper not found")
    return DataResponse[Paper](data=paper)


@router.delete("/{paper_id}", response_model=MessageResponse)
def delete_paper(
    paper_id: str,
    repo: PaperRepository = Depends(get_paper_repo),
):
    if not repo.delete(paper_id):
        raise HTTPException(status_code=404, detail="Paper not found")
    return MessageResponse(message=f"Paper {paper_id} deleted")
