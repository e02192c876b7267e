from __future__ import annotations

import logging
from typing import List, Optional

from .budget import PROMPT_OVERHEAD_WORDS, calculate_context_budget
from .ledger import MaterialLedger
from .models import (
    ContextBudgetReport,
    ContextBundle,
    IncludedSource,
    MaterialStatus,
    SourceMaterial,
)
from .projects import ProjectGateway

logger = logging.getLogger(__name__)

DEFAULT_STARRED_LIMIT = 5


def select_within_budget(materials: List[SourceMaterial], available: int) -> List[SourceMaterial]:
    """
    Take materials in the given order until the next one would overflow the
    budget, then stop. Later, smaller materials are never considered and no
    material is truncated.
    """
    selected: List[SourceMaterial] = []
    used = 0
    for material in materials:
        words = material.word_count or 0
        if used + words > available:
            break
        selected.append(material)
        used += words
    return selected


class ContextAssembler:
    """
    Builds the context bundle handed to the generation service. Read-only;
    every call recomputes the budget and selection from current state.
    """

    def __init__(
        self,
        ledger: MaterialLedger,
        projects: ProjectGateway,
        starred_limit: int = DEFAULT_STARRED_LIMIT,
    ):
        self.ledger = ledger
        self.projects = projects
        self.starred_limit = starred_limit

    def eligible_materials(self, project_id: str) -> List[SourceMaterial]:
        return [
            m
            for m in self.ledger.list_by_project(project_id)
            if m.status == MaterialStatus.COMPLETED and m.is_active and m.extracted_text is not None
        ]

    def assemble(self, project_id: str, session_id: Optional[str] = None) -> ContextBundle:
        budget = calculate_context_budget(
            self.projects.manuscript_word_count(project_id),
            self.projects.outline_word_count(project_id),
        )
        eligible = self.eligible_materials(project_id)
        selected = select_within_budget(eligible, budget.available_for_sources)
        if len(selected) < len(eligible):
            logger.info(
                "Project %s: %d of %d active sources fit in %d available words",
                project_id,
                len(selected),
                len(eligible),
                budget.available_for_sources,
            )

        sources = [
            IncludedSource(
                material_id=m.id,
                title=m.title,
                author_name=m.author_name,
                word_count=m.word_count or 0,
                content=m.extracted_text or "",
            )
            for m in selected
        ]
        budget.source_words_used = sum(s.word_count for s in sources)
        starred = self.projects.starred_messages(session_id, self.starred_limit) if session_id else []
        return ContextBundle(sources=sources, starred_messages=starred, budget=budget)

    def budget_report(self, project_id: str) -> ContextBudgetReport:
        manuscript_words = self.projects.manuscript_word_count(project_id)
        outline_words = self.projects.outline_word_count(project_id)
        budget = calculate_context_budget(manuscript_words, outline_words)

        completed = [m for m in self.ledger.list_by_project(project_id) if m.status == MaterialStatus.COMPLETED]
        active_words = sum(m.word_count or 0 for m in completed if m.is_active)
        total_words = sum(m.word_count or 0 for m in completed)
        percent = round(
            (manuscript_words + outline_words + PROMPT_OVERHEAD_WORDS + active_words) / budget.total_budget * 100
        )
        return ContextBudgetReport(
            total_budget=budget.total_budget,
            manuscript_words=manuscript_words,
            outline_words=outline_words,
            overhead=PROMPT_OVERHEAD_WORDS,
            available_for_sources=budget.available_for_sources,
            active_source_words=active_words,
            total_source_words=total_words,
            budget_used_percent=percent,
        )


def build_context_prompt(bundle: ContextBundle) -> str:
    """Render a bundle as the context section of the generation prompt."""
    prompt = ""
    if bundle.sources:
        prompt += "\n\n<source_materials>\n"
        prompt += (
            "The following source materials have been uploaded by the user. "
            "Use them to inform your writing and responses.\n\n"
        )
        for source in bundle.sources:
            prompt += f"--- {source.title}"
            if source.author_name:
                prompt += f" by {source.author_name}"
            prompt += f" ({source.word_count:,} words) ---\n"
            prompt += source.content
            prompt += "\n\n"
        prompt += "</source_materials>"

    if bundle.starred_messages:
        prompt += "\n\n<starred_insights>\n"
        prompt += "The user has starred these important messages from previous conversations:\n\n"
        for i, message in enumerate(bundle.starred_messages, start=1):
            prompt += f"{i}. [{message.role}]: {message.content}\n\n"
        prompt += "</starred_insights>"
    return prompt
