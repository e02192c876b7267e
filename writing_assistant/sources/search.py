from __future__ import annotations

from typing import Iterable, List

from .ledger import MaterialLedger
from .models import MaterialStatus, SearchMatch, SearchResult, SourceMaterial

DEFAULT_MAX_MATCHES = 10
CONTEXT_LINES = 2


def grep_text(text: str, query: str, max_matches: int = DEFAULT_MAX_MATCHES) -> List[SearchMatch]:
    """
    Case-insensitive substring scan, line by line. Each match carries the
    two lines before and after it, clamped at the document edges. Scanning
    stops once `max_matches` is reached.
    """
    needle = query.strip().lower()
    if not needle or not text:
        return []
    lines = text.split("\n")
    matches: List[SearchMatch] = []
    for i, line in enumerate(lines):
        if len(matches) >= max_matches:
            break
        if needle in line.lower():
            start = max(0, i - CONTEXT_LINES)
            end = min(len(lines), i + CONTEXT_LINES + 1)
            matches.append(SearchMatch(line_number=i + 1, line_content=line, context="\n".join(lines[start:end])))
    return matches


def grep_materials(
    materials: Iterable[SourceMaterial],
    query: str,
    max_matches: int = DEFAULT_MAX_MATCHES,
) -> List[SearchResult]:
    results: List[SearchResult] = []
    for material in materials:
        if material.status != MaterialStatus.COMPLETED or not material.extracted_text:
            continue
        matches = grep_text(material.extracted_text, query, max_matches)
        if matches:
            results.append(SearchResult(source_title=material.title, material_id=material.id, matches=matches))
    return results


class GrepSearch:
    """On-demand search over every completed material of a project. No index."""

    def __init__(self, ledger: MaterialLedger, max_matches: int = DEFAULT_MAX_MATCHES):
        self.ledger = ledger
        self.max_matches = max_matches

    def search(self, project_id: str, query: str) -> List[SearchResult]:
        return grep_materials(self.ledger.list_by_project(project_id), query, self.max_matches)
