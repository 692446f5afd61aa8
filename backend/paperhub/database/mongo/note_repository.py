from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from bson import ObjectId

from paperhub.database.base import NoteRepository, merge_annotation
from paperhub.database.errors import EntityNotFoundError, coerce
from paperhub.database.mongo.connection import DocumentConnection
from paperhub.database.mongo.utils import (
    NEWEST_FIRST,
    annotation_document,
    doc_to_annotation,
    doc_to_note,
    icontains,
    mongo_errors,
    object_id,
)
from paperhub.model import (
    AnnotationCreate,
    AnnotationUpdate,
    Note,
    NoteCreate,
    NoteUpdate,
    utcnow,
)


class MongoNoteRepository(NoteRepository):
    """
    Document repository for Note.

    Annotations are embedded in the note document and changed one element
    at a time with $push, $pull and positional $set.
    """

    def __init__(self, connection: DocumentConnection):
        self._connection = connection

    @property
    def collection(self):
        return self._connection.notes

    # =====================================================
    # Basic CRUD
    # =====================================================

    @mongo_errors("create note")
    def create(self, data: Union[NoteCreate, dict]) -> Note:
        payload = coerce(NoteCreate, data)
        now = utcnow()
        result = self.collection.insert_one(
            {
                "paper_id": payload.paper_id,
                "content": payload.content,
                "tags": list(payload.tags),
                "annotations": [annotation_document(a) for a in payload.annotations],
                "created_at": now,
                "updated_at": now,
            }
        )
        return self.find_by_id(str(result.inserted_id))

    @mongo_errors("find note by id")
    def find_by_id(self, entity_id: str) -> Optional[Note]:
        doc = self._load(entity_id)
        return doc_to_note(doc) if doc else None

    @mongo_errors("list notes")
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Note]:
        cursor = self.collection.find({}).sort(NEWEST_FIRST).skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)
        return [doc_to_note(d) for d in cursor]

    @mongo_errors("update note")
    def update(self, entity_id: str, data: Union[NoteUpdate, dict]) -> Optional[Note]:
        oid = object_id(entity_id)
        if oid is None:
            return None
        changes = coerce(NoteUpdate, data).changes()

        to_set: Dict[str, Any] = {"updated_at": utcnow()}
        if changes.get("content") is not None:
            to_set["content"] = changes["content"]
        if changes.get("tags") is not None:
            to_set["tags"] = list(changes["tags"])
        if changes.get("annotations") is not None:
            to_set["annotations"] = [
                annotation_document(AnnotationCreate.model_validate(a)) for a in changes["annotations"]
            ]

        result = self.collection.update_one({"_id": oid}, {"$set": to_set})
        if result.matched_count == 0:
            return None
        return self.find_by_id(entity_id)

    @mongo_errors("delete note")
    def delete(self, entity_id: str) -> bool:
        oid = object_id(entity_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count > 0

    @mongo_errors("count notes")
    def count(self) -> int:
        return self.collection.count_documents({})

    # =====================================================
    # Queries
    # =====================================================

    @mongo_errors("find notes by paper")
    def find_by_paper_id(self, paper_id: str) -> List[Note]:
        return self._find({"paper_id": paper_id})

    @mongo_errors("find notes by tag")
    def find_by_tag(self, tag: str) -> List[Note]:
        return self._find({"tags": icontains(tag)})

    @mongo_errors("search notes")
    def find_by_content(self, query: str) -> List[Note]:
        return self._find({"content": icontains(query)})

    @mongo_errors("list annotated notes")
    def get_notes_with_annotations(self, paper_id: str) -> List[Note]:
        return [n for n in self._find({"paper_id": paper_id}) if n.annotations]

    @mongo_errors("detach notes from paper")
    def detach_paper(self, paper_id: str) -> int:
        result = self.collection.update_many(
            {"paper_id": paper_id},
            {"$set": {"paper_id": None, "updated_at": utcnow()}},
        )
        return result.modified_count

    # =====================================================
    # Annotations
    # =====================================================

    @mongo_errors("add annotation")
    def add_annotation(self, note_id: str, annotation: Union[AnnotationCreate, dict]) -> Note:
        payload = coerce(AnnotationCreate, annotation)
        oid = self._require_id(note_id)
        result = self.collection.update_one(
            {"_id": oid},
            {
                "$push": {"annotations": annotation_document(payload)},
                "$set": {"updated_at": utcnow()},
            },
        )
        if result.matched_count == 0:
            raise EntityNotFoundError("Note", note_id)
        return self.find_by_id(note_id)

    @mongo_errors("remove annotation")
    def remove_annotation(self, note_id: str, annotation_id: str) -> Note:
        oid = self._require_id(note_id)
        annotation_oid = object_id(annotation_id)
        if annotation_oid is None:
            raise EntityNotFoundError("Annotation", annotation_id)
        result = self.collection.update_one(
            {"_id": oid, "annotations._id": annotation_oid},
            {
                "$pull": {"annotations": {"_id": annotation_oid}},
                "$set": {"updated_at": utcnow()},
            },
        )
        if result.matched_count == 0:
            raise EntityNotFoundError("Annotation", annotation_id)
        return self.find_by_id(note_id)

    @mongo_errors("update annotation")
    def update_annotation(
        self,
        note_id: str,
        annotation_id: str,
        annotation: Union[AnnotationUpdate, dict],
    ) -> Note:
        changes = coerce(AnnotationUpdate, annotation).changes()
        doc = self._require(note_id)
        current = self._find_annotation(doc, annotation_id)

        merged = merge_annotation(doc_to_annotation(current), changes)
        replacement = annotation_document(AnnotationCreate.from_annotation(merged), annotation_id=current["_id"])
        # positional update of the one element; concurrent changes to the others are kept
        result = self.collection.update_one(
            {"_id": doc["_id"], "annotations._id": current["_id"]},
            {"$set": {"annotations.$": replacement, "updated_at": utcnow()}},
        )
        if result.matched_count == 0:
            raise EntityNotFoundError("Annotation", annotation_id)
        return self.find_by_id(note_id)

    # =====================================================
    # Internal helpers
    # =====================================================

    def _find(self, query: Dict[str, Any]) -> List[Note]:
        return [doc_to_note(d) for d in self.collection.find(query).sort(NEWEST_FIRST)]

    def _load(self, note_id: str) -> Optional[Dict[str, Any]]:
        oid = object_id(note_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def _require(self, note_id: str) -> Dict[str, Any]:
        doc = self._load(note_id)
        if doc is None:
            raise EntityNotFoundError("Note", note_id)
        return doc

    def _require_id(self, note_id: str) -> ObjectId:
        oid = object_id(note_id)
        if oid is None or self.collection.find_one({"_id": oid}, {"_id": 1}) is None:
            raise EntityNotFoundError("Note", note_id)
        return oid

    @staticmethod
    def _find_annotation(doc: Dict[str, Any], annotation_id: str) -> Dict[str, Any]:
        for annotation in doc.get("annotations") or []:
            if str(annotation["_id"]) == annotation_id:
                return annotation
        raise EntityNotFoundError("Annotation", annotation_id)
