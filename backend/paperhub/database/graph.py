"""Citation-graph walks shared by both storage engines."""

from __future__ import annotations

from collections import deque
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from paperhub.database.errors import ValidationError

Edge = Tuple[str, str]  # (source_paper_id, target_paper_id)


def check_depth(depth: int) -> int:
    if depth < 1:
        raise ValidationError(f"depth must be >= 1, got {depth}")
    return depth


def walk_citations(
    paper_id: str,
    depth: int,
    fetch_edges: Callable[[Set[str]], Iterable[Edge]],
) -> Set[str]:
    """
    Breadth-first walk in both citation directions.

    ``fetch_edges`` receives the current frontier and returns every edge
    touching it. Returns the ids reached within ``depth`` hops, excluding
    ``paper_id`` itself.
    """
    check_depth(depth)
    visited = {paper_id}
    frontier = {paper_id}

    for _ in range(depth):
        if not frontier:
            break
        reached: Set[str] = set()
        for source, target in fetch_edges(frontier):
            if source in frontier:
                reached.add(target)
            if target in frontier:
                reached.add(source)
        frontier = reached - visited
        visited |= frontier

    visited.discard(paper_id)
    return visited


def shortest_path(
    source_id: str,
    target_id: str,
    fetch_outgoing: Callable[[Set[str]], Iterable[Edge]],
) -> List[Edge]:
    """Shortest chain of outgoing edges from source to target ([] if unreachable)."""
    if source_id == target_id:
        return []

    parents: Dict[str, Optional[str]] = {source_id: None}
    frontier = {source_id}

    while frontier:
        next_frontier: Set[str] = set()
        for source, target in fetch_outgoing(frontier):
            if target in parents:
                continue
            parents[target] = source
            if target == target_id:
                return _unwind(parents, target_id)
            next_frontier.add(target)
        frontier = next_frontier

    return []


def _unwind(parents: Dict[str, Optional[str]], node: str) -> List[Edge]:
    path: deque = deque()
    while parents[node] is not None:
        parent = parents[node]
        path.appendleft((parent, node))
        node = parent
    return list(path)


def parse_date(value: Union[str, date], field: str = "date") -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value!r}") from e


def parse_date_range(start: Union[str, date], end: Union[str, date]) -> Tuple[date, date]:
    start_date = parse_date(start, "start date")
    end_date = parse_date(end, "end date")
    if start_date > end_date:
        raise ValidationError(f"start date {start_date} is after end date {end_date}")
    return start_date, end_date
