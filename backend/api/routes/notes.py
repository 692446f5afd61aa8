from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_note_repo
from api.schemas.common import DataResponse, ListResponse, MessageResponse
from paperhub.database.base import NoteRepository
from paperhub.model import AnnotationCreate, AnnotationUpdate, Note, NoteCreate, NoteUpdate

router = APIRouter(prefix="/api/notes", tags=["notes"])


@router.get("", response_model=ListResponse[Note])
def list_notes(
    paper_id: Optional[str] = Query(default=None, alias="paperId"),
    tag: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    annotated: bool = Query(default=False),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    repo: NoteRepository = Depends(get_note_repo),
):
    """
    List notes. One filter applies at a time, in this order:
    paperId (with ``annotated`` only notes carrying annotations), tag, q.
    """
    if paper_id is not None:
        notes = repo.get_notes_with_annotations(paper_id) if annotated else repo.find_by_paper_id(paper_id)
    elif tag:
        notes = repo.find_by_tag(tag)
    elif q:
        notes = repo.find_by_content(q)
    else:
        notes = repo.find_all(limit=limit, offset=offset)
    return ListResponse[Note].of(notes)


@router.post("", response_model=DataResponse[Note], status_code=201)
def create_note(
    body: NoteCreate,
    repo: NoteRepository = Depends(get_note_repo),
):
    return DataResponse[Note](data=repo.create(body))


@router.get("/{note_id}", response_model=DataResponse[Note])
def get_note(
    note_id: str,
    repo: NoteRepository = Depends(get_note_repo),
):
    note = repo.find_by_id(note_id)
    if not note:
        raise HTTPException(status_code=404, detail="Note not found")
    return DataResponse[Note](data=note)


@router.put("/{note_id}", response_model=DataResponse[Note])
def update_note(
    note_id: str,
    body: NoteUpdate,
    repo: NoteRepository = Depends(get_note_repo),
):
    note = repo.update(note_id, body)
    if not note:
        raise HTTPException(status_code=404, detail="Note not found")
    return DataResponse[Note](data=note)


@router.delete("/{note_id}", response_model=MessageResponse)
def delete_note(
    note_id: str,
    repo: NoteRepository = Depends(get_note_repo),
):
    if not repo.delete(note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return MessageResponse(message=f"Note {note_id} deleted")


# --- Annotations (each returns the whole note) ---

@router.post("/{note_id}/annotations", response_model=DataResponse[Note], status_code=201)
def add_annotation(
    note_id: str,
    body: AnnotationCreate,
    repo: NoteRepository = Depends(get_note_repo),
):
    return DataResponse[Note](data=repo.add_annotation(note_id, body))


@router.put("/{note_id}/annotations/{annotation_id}", response_model=DataResponse[Note])
def update_annotation(
    note_id: str,
    annotation_id: str,
    body: AnnotationUpdate,
    repo: NoteRepository = Depends(get_note_repo),
):
    return DataResponse[Note](data=repo.update_annotation(note_id, annotation_id, body))


@router.delete("/{note_id}/annotations/{annotation_id}", response_model=DataResponse[Note])
def remove_annotation(
    note_id: str,
    annotation_id: str,
    repo: NoteRepository = Depends(get_note_repo),
):
    return DataResponse[Note](data=repo.remove_annotation(note_id, annotation_id))
