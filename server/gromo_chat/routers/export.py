"""Transcript export endpoint."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import AppServices, current_user, get_services
from ..models import schemas
from ..services.auth import AuthenticatedUser
from ..services.pdf_export import export_transcript_base64

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


@router.post("/pdf", response_model=schemas.ExportResponse)
async def export_pdf(
    payload: schemas.ExportRequest,
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> schemas.ExportResponse:
    """Render the transcript as a PDF and return it base64-encoded."""

    if not payload.messages:
        raise HTTPException(status_code=400, detail="Nothing to export")

    messages = [{"role": m.role, "content": m.content} for m in payload.messages]
    try:
        pdf = export_transcript_base64(messages, assistant_name=services.settings.assistant_name)
    except Exception as exc:
        logger.exception("PDF export failed for user %s", user.id)
        raise HTTPException(status_code=500, detail=f"Failed to export PDF: {exc}") from exc
    return schemas.ExportResponse(pdf=pdf)
