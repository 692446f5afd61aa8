from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Union

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from paperhub.database.base import PaperRepository
from paperhub.database.errors import DuplicateEntityError, EntityNotFoundError, ValidationError, coerce
from paperhub.database.graph import Edge, check_depth, parse_date_range, walk_citations
from paperhub.database.mongo.connection import DocumentConnection
from paperhub.database.mongo.utils import (
    NEWEST_FIRST,
    author_document,
    doc_to_citation,
    doc_to_paper,
    icontains,
    mongo_errors,
    object_id,
    object_ids,
    to_datetime,
)
from paperhub.model import (
    Author,
    Citation,
    CitationType,
    PaginatedResult,
    Pagination,
    Paper,
    PaperCreate,
    PaperUpdate,
    SearchParams,
    SortKey,
    SortOrder,
    utcnow,
)

_REQUIRED_FIELDS = ("title", "abstract", "keywords", "publication_date", "metadata")


class MongoPaperRepository(PaperRepository):
    """
    Document repository for Paper.

    Authors are embedded copies; citations live in their own collection
    and are folded back into ``Paper.citations`` on read.
    """

    def __init__(self, connection: DocumentConnection):
        self._connection = connection

    @property
    def collection(self):
        return self._connection.papers

    @property
    def citations(self):
        return self._connection.citations

    # =====================================================
    # Basic CRUD
    # =====================================================

    @mongo_errors("create paper")
    def create(self, data: Union[PaperCreate, dict]) -> Paper:
        payload = coerce(PaperCreate, data)
        if payload.doi and self.collection.find_one({"doi": payload.doi}, {"_id": 1}):
            raise DuplicateEntityError("Paper", "doi", payload.doi)

        now = utcnow()
        doc = {
            "title": payload.title,
            "abstract": payload.abstract,
            "keywords": list(payload.keywords),
            "publication_date": to_datetime(payload.publication_date),
            "journal": payload.journal,
            "conference": payload.conference,
            "url": payload.url,
            "file_path": payload.file_path,
            "authors": [author_document(a) for a in payload.authors],
            "metadata": dict(payload.metadata),
            "created_at": now,
            "updated_at": now,
        }
        if payload.doi:
            doc["doi"] = payload.doi

        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateEntityError("Paper", "doi", payload.doi) from e

        return self.find_by_id(str(result.inserted_id))

    @mongo_errors("find paper by id")
    def find_by_id(self, entity_id: str) -> Optional[Paper]:
        oid = object_id(entity_id)
        if oid is None:
            return None
        doc = self.collection.find_one({"_id": oid})
        return self._hydrate([doc])[0] if doc else None

    @mongo_errors("list papers")
    def find_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Paper]:
        cursor = self.collection.find({}).sort(NEWEST_FIRST).skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)
        return self._hydrate(list(cursor))

    @mongo_errors("update paper")
    def update(self, entity_id: str, data: Union[PaperUpdate, dict]) -> Optional[Paper]:
        oid = object_id(entity_id)
        if oid is None:
            return None
        changes = coerce(PaperUpdate, data).changes()
        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                changes.pop(field)

        to_set: Dict[str, Any] = {"updated_at": utcnow()}
        to_unset: Dict[str, str] = {}

        for key, value in changes.items():
            if key == "doi":
                if value:
                    clash = self.collection.find_one({"doi": value, "_id": {"$ne": oid}}, {"_id": 1})
                    if clash:
                        raise DuplicateEntityError("Paper", "doi", value)
                    to_set["doi"] = value
                else:
                    to_unset["doi"] = ""
            elif key == "authors":
                to_set["authors"] = [author_document(Author.model_validate(a)) for a in value]
            elif key == "publication_date":
                to_set[key] = to_datetime(value)
            else:
                to_set[key] = value

        update = {"$set": to_set}
        if to_unset:
            update["$unset"] = to_unset

        try:
            result = self.collection.update_one({"_id": oid}, update)
        except DuplicateKeyError as e:
            raise DuplicateEntityError("Paper", "doi", changes.get("doi")) from e
        if result.matched_count == 0:
            return None
        return self.find_by_id(entity_id)

    @mongo_errors("delete paper")
    def delete(self, entity_id: str) -> bool:
        oid = object_id(entity_id)
        if oid is None:
            return False
        result = self.collection.delete_one({"_id": oid})
        if result.deleted_count == 0:
            return False

        paper_id = str(oid)
        self.citations.delete_many(
            {"$or": [{"source_paper_id": paper_id}, {"target_paper_id": paper_id}]}
        )
        # notes outlive their paper as standalone notes
        self._connection.notes.update_many({"paper_id": paper_id}, {"$set": {"paper_id": None}})
        return True

    @mongo_errors("count papers")
    def count(self) -> int:
        return self.collection.count_documents({})

    # =====================================================
    # Queries
    # =====================================================

    @mongo_errors("search papers")
    def search(self, params: Union[SearchParams, dict]) -> PaginatedResult[Paper]:
        params = coerce(SearchParams, params)
        query = self._search_filter(params)
        total = self.collection.count_documents(query)

        if params.sort_by == SortKey.CITATIONS:
            docs = self._page_by_citations(query, params)
        else:
            docs = list(
                self.collection.find(query)
                .sort(self._search_sort(params))
                .skip(params.offset)
                .limit(params.limit)
            )

        return PaginatedResult[Paper](
            data=self._hydrate(docs),
            pagination=Pagination.build(params.page, params.limit, total),
        )

    @mongo_errors("find paper by doi")
    def find_by_doi(self, doi: str) -> Optional[Paper]:
        doc = self.collection.find_one({"doi": doi})
        return self._hydrate([doc])[0] if doc else None

    @mongo_errors("find papers by author")
    def find_by_author(self, author_name: str) -> List[Paper]:
        return self._find({"authors.name": icontains(author_name)})

    @mongo_errors("find papers by keyword")
    def find_by_keyword(self, keyword: str) -> List[Paper]:
        return self._find({"keywords": keyword})

    @mongo_errors("find papers by journal")
    def find_by_journal(self, journal: str) -> List[Paper]:
        return self._find({"journal": icontains(journal)})

    @mongo_errors("find papers by date range")
    def find_by_date_range(self, start, end) -> List[Paper]:
        start_date, end_date = parse_date_range(start, end)
        return self._find(
            {"publication_date": {"$gte": to_datetime(start_date), "$lte": to_datetime(end_date)}},
            sort=[("publication_date", DESCENDING)] + NEWEST_FIRST,
        )

    # =====================================================
    # Citation graph
    # =====================================================

    @mongo_errors("get citations")
    def get_citations(self, paper_id: str) -> List[Citation]:
        cursor = self.citations.find({"source_paper_id": paper_id}).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        return [doc_to_citation(d) for d in cursor]

    @mongo_errors("get citing papers")
    def get_cited_by(self, paper_id: str) -> List[Paper]:
        citing = [d["source_paper_id"] for d in self.citations.find({"target_paper_id": paper_id}, {"source_paper_id": 1})]
        if not citing:
            return []
        return self._find({"_id": {"$in": object_ids(citing)}})

    @mongo_errors("add citation")
    def add_citation(
        self,
        source_paper_id: str,
        target_paper_id: str,
        context: str = "",
        citation_type: CitationType = CitationType.DIRECT,
        page_number: Optional[int] = None,
    ) -> Citation:
        if source_paper_id == target_paper_id:
            raise ValidationError("A paper cannot cite itself")
        for paper_id in (source_paper_id, target_paper_id):
            oid = object_id(paper_id)
            if oid is None or self.collection.find_one({"_id": oid}, {"_id": 1}) is None:
                raise EntityNotFoundError("Paper", paper_id)

        pair = f"{source_paper_id} -> {target_paper_id}"
        if self.citations.find_one(
            {"source_paper_id": source_paper_id, "target_paper_id": target_paper_id}, {"_id": 1}
        ):
            raise DuplicateEntityError("Citation", "pair", pair)

        doc = {
            "source_paper_id": source_paper_id,
            "target_paper_id": target_paper_id,
            "context": context or "",
            "citation_type": CitationType(citation_type).value,
            "page_number": page_number,
            "created_at": utcnow(),
        }
        try:
            result = self.citations.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateEntityError("Citation", "pair", pair) from e
        return doc_to_citation({**doc, "_id": result.inserted_id})

    @mongo_errors("remove citation")
    def remove_citation(self, source_paper_id: str, target_paper_id: str) -> bool:
        result = self.citations.delete_one(
            {"source_paper_id": source_paper_id, "target_paper_id": target_paper_id}
        )
        return result.deleted_count > 0

    @mongo_errors("count citations")
    def get_citation_count(self, paper_id: str) -> int:
        return self.citations.count_documents({"target_paper_id": paper_id})

    @mongo_errors("get citation network")
    def get_citation_network(self, paper_id: str, depth: int = 1) -> List[Paper]:
        check_depth(depth)
        reached = walk_citations(paper_id, depth, self._edges_touching)
        if not reached:
            return []
        return self._find({"_id": {"$in": object_ids(reached)}})

    # =====================================================
    # Internal helpers
    # =====================================================

    def _find(self, query: Dict[str, Any], sort=None) -> List[Paper]:
        return self._hydrate(list(self.collection.find(query).sort(sort or NEWEST_FIRST)))

    def _hydrate(self, docs: List[Dict[str, Any]]) -> List[Paper]:
        """Attach outgoing citation ids to raw paper documents."""
        if not docs:
            return []
        ids = [str(d["_id"]) for d in docs]
        outgoing: Dict[str, List[str]] = defaultdict(list)
        cursor = self.citations.find(
            {"source_paper_id": {"$in": ids}},
            {"source_paper_id": 1, "target_paper_id": 1},
        ).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        for c in cursor:
            outgoing[c["source_paper_id"]].append(c["target_paper_id"])
        return [doc_to_paper(d, outgoing.get(str(d["_id"]), [])) for d in docs]

    def _edges_touching(self, frontier: Set[str]) -> List[Edge]:
        ids = list(frontier)
        outgoing = self.citations.find({"source_paper_id": {"$in": ids}}, {"source_paper_id": 1, "target_paper_id": 1})
        incoming = self.citations.find({"target_paper_id": {"$in": ids}}, {"source_paper_id": 1, "target_paper_id": 1})
        return [(c["source_paper_id"], c["target_paper_id"]) for c in list(outgoing) + list(incoming)]

    @staticmethod
    def _search_filter(params: SearchParams) -> Dict[str, Any]:
        conditions: List[Dict[str, Any]] = []

        if params.query:
            pattern = icontains(params.query)
            conditions.append({"$or": [{"title": pattern}, {"abstract": pattern}, {"keywords": pattern}]})
        if params.authors:
            conditions.append({"$or": [{"authors.name": icontains(a)} for a in params.authors]})
        if params.keywords:
            conditions.append({"keywords": {"$in": list(params.keywords)}})
        if params.journal:
            conditions.append({"journal": icontains(params.journal)})
        if params.conference:
            conditions.append({"conference": icontains(params.conference)})

        date_range: Dict[str, Any] = {}
        if params.date_from:
            date_range["$gte"] = to_datetime(params.date_from)
        if params.date_to:
            date_range["$lte"] = to_datetime(params.date_to)
        if date_range:
            conditions.append({"publication_date": date_range})

        return {"$and": conditions} if conditions else {}

    @staticmethod
    def _search_sort(params: SearchParams) -> list:
        if params.sort_by is None:
            return [("publication_date", DESCENDING)] + NEWEST_FIRST

        direction = ASCENDING if params.direction() == SortOrder.ASC else DESCENDING
        if params.sort_by == SortKey.DATE:
            return [("publication_date", direction)] + NEWEST_FIRST
        if params.sort_by == SortKey.TITLE:
            return [("title", direction)] + NEWEST_FIRST
        # relevance: no ranking model, creation order stands in
        return [("created_at", direction), ("_id", direction)]

    def _page_by_citations(self, query: Dict[str, Any], params: SearchParams) -> List[Dict[str, Any]]:
        candidates = list(self.collection.find(query, {"_id": 1, "created_at": 1}).sort(NEWEST_FIRST))
        if not candidates:
            return []

        ids = [str(d["_id"]) for d in candidates]
        counts = {
            row["_id"]: row["count"]
            for row in self.citations.aggregate(
                [
                    {"$match": {"target_paper_id": {"$in": ids}}},
                    {"$group": {"_id": "$target_paper_id", "count": {"$sum": 1}}},
                ]
            )
        }
        # stable sort keeps the newest-first tie-break
        ordered = sorted(
            ids,
            key=lambda i: counts.get(i, 0),
            reverse=params.direction() == SortOrder.DESC,
        )
        page_ids = ordered[params.offset: params.offset + params.limit]

        docs = {str(d["_id"]): d for d in self.collection.find({"_id": {"$in": object_ids(page_ids)}})}
        return [docs[i] for i in page_ids if i in docs]
