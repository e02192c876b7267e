from __future__ import annotations

from typing import Any, Dict

from fastapi import Header, Request

from writing_assistant.sources import (
    ContextBundle,
    SearchResult,
    SourceMaterial,
    SourceMaterialService,
)


def get_service(request: Request) -> SourceMaterialService:
    return request.app.state.service


def get_current_user(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    # Authentication lives upstream; the gateway forwards the verified user id.
    return x_user_id


def material_payload(material: SourceMaterial) -> Dict[str, Any]:
    return {
        "id": material.id,
        "project_id": material.project_id,
        "title": material.title,
        "filename": material.filename,
        "file_type": material.file_type,
        "file_size": material.file_size,
        "status": material.status,
        "error_message": material.error_message,
        "word_count": material.word_count,
        "page_count": material.page_count,
        "author_name": material.author_name,
        "metadata": material.metadata,
        "is_active": material.is_active,
        "created_at": material.created_at,
        "updated_at": material.updated_at,
        "processed_at": material.processed_at,
    }


def bundle_payload(bundle: ContextBundle) -> Dict[str, Any]:
    return {
        "sources": [
            {
                "material_id": s.material_id,
                "title": s.title,
                "author_name": s.author_name,
                "word_count": s.word_count,
                "content": s.content,
            }
            for s in bundle.sources
        ],
        "starred_messages": [
            {"role": m.role, "content": m.content, "created_at": m.created_at} for m in bundle.starred_messages
        ],
        "budget": {
            "total_budget": bundle.budget.total_budget,
            "used": bundle.budget.used,
            "available_for_sources": bundle.budget.available_for_sources,
            "source_words_used": bundle.budget.source_words_used,
        },
    }


def search_payload(result: SearchResult) -> Dict[str, Any]:
    return {
        "source_title": result.source_title,
        "material_id": result.material_id,
        "matches": [
            {"line_number": m.line_number, "line_content": m.line_content, "context": m.context}
            for m in result.matches
        ],
    }
