from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_citation_repo, get_paper_repo
from api.schemas.common import DataResponse, ListResponse, MessageResponse
from api.schemas.paper import CitationRequest
from paperhub.database.base import CitationRepository, PaperRepository
from paperhub.model import Citation, CitationGraph, CitationStatistics, Paper

router = APIRouter(prefix="/api/papers", tags=["citations"])


@router.get("/{paper_id}/citations", response_model=ListResponse[Citation])
def get_citations(
    paper_id: str,
    repo: PaperRepository = Depends(get_paper_repo),
):
    """Outgoing citations of a paper."""
    return ListResponse[Citation].of(repo.get_citations(paper_id))


@router.get("/{paper_id}/cited-by", response_model=ListResponse[Paper])
def get_cited_by(
    paper_id: str,
    repo: PaperRepository = Depends(get_paper_repo),
):
    return ListResponse[Paper].of(repo.get_cited_by(paper_id))


@router.get("/{paper_id}/network", response_model=ListResponse[Paper])
def get_citation_network(
    paper_id: str,
    depth: int = Query(default=1, ge=1, le=5),
    repo: PaperRepository = Depends(get_paper_repo),
):
    """Papers within ``depth`` citation hops, in either direction."""
    return ListResponse[Paper].of(repo.get_citation_network(paper_id, depth=depth))


@router.post("/{paper_id}/citations", response_model=DataResponse[Citation], status_code=201)
def add_citation(
    paper_id: str,
    body: CitationRequest,
    repo: PaperRepository = Depends(get_paper_repo),
):
    citation = repo.add_citation(
        paper_id,
        body.target_paper_id,
        context=body.context,
        citation_type=body.citation_type,
        page_number=body.page_number,
    )
    return DataResponse[Citation](data=citation)


@router.delete("/{paper_id}/citations/{target_paper_id}", response_model=MessageResponse)
def remove_citation(
    paper_id: str,
    target_paper_id: str,
    repo: PaperRepository = Depends(get_paper_repo),
):
    if not repo.remove_citation(paper_id, target_paper_id):
        raise HTTPException(status_code=404, detail="Citation not found")
    return MessageResponse(message=f"Citation {paper_id} -> {target_paper_id} removed")


# --- Relational-only citation views ---

@router.get("/{paper_id}/citation-graph", response_model=DataResponse[CitationGraph])
def get_citation_graph(
    paper_id: str,
    depth: int = Query(default=1, ge=1, le=5),
    repo: CitationRepository = Depends(get_citation_repo),
):
    return DataResponse[CitationGraph](data=repo.get_citation_graph(paper_id, depth=depth))


@router.get("/{paper_id}/citation-stats", response_model=DataResponse[CitationStatistics])
def get_citation_statistics(
    paper_id: str,
    repo: CitationRepository = Depends(get_citation_repo),
):
    return DataResponse[CitationStatistics](data=repo.get_citation_statistics(paper_id))
