"""
API routes for PDF upload and ingestion
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings
from ..exceptions import SchemeServiceError, ValidationError
from ..models.scheme import Benefits, SchemeFilters
from ..services.ingestion_service import IngestionPipeline
from ..utils.validators import (
    format_file_size,
    parse_comma_list,
    sanitize_filename,
    staged_upload_path,
    validate_file_extension,
    validate_file_size
)
from .dependencies import get_app_settings, get_ingestion_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schemes", tags=["upload"])


@router.post("/ingest", status_code=201)
async def ingest_scheme_pdf(
    pdf: Optional[UploadFile] = File(None, description="Scheme PDF document"),
    scheme_name: Optional[str] = Form(None, alias="schemeName"),
    benefits_type: str = Form("Financial", alias="benefitsType"),
    benefits_value: float = Form(0, alias="benefitsValue"),
    benefits_description: str = Form("", alias="benefitsDescription"),
    state: Optional[str] = Form(None, description="Comma-separated states"),
    gender: Optional[str] = Form(None, description="Comma-separated genders"),
    caste: Optional[str] = Form(None, description="Comma-separated caste categories"),
    required_documents: Optional[str] = Form(None, alias="requiredDocuments"),
    settings: Settings = Depends(get_app_settings),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)
):
    """
    Upload a government scheme PDF and make it searchable

    The upload is staged under UPLOAD_DIR, ingested from that file, and
    removed afterwards whether ingestion succeeds or fails.
    """
    try:
        # Validate form
        if pdf is None or not pdf.filename:
            raise ValidationError("A PDF file is required", field="pdf")
        if not scheme_name or not scheme_name.strip():
            raise ValidationError("Scheme name is required", field="schemeName")

        allowed_extensions = settings.get_allowed_extensions_list()
        if not validate_file_extension(pdf.filename, allowed_extensions):
            raise ValidationError(
                f"Invalid file type. Only {', '.join(allowed_extensions)} files are allowed",
                field="pdf"
            )

        try:
            benefits = Benefits(type=benefits_type, max_value_inr=benefits_value, description=benefits_description)
        except PydanticValidationError as e:
            raise ValidationError("Invalid benefits metadata", field="benefits", details={"errors": [err["msg"] for err in e.errors()]}) from e

        filters = None
        if any(value is not None for value in (state, gender, caste)):
            filters = SchemeFilters(state=state, gender=gender, caste=caste)

        # Read file content
        file_content = await pdf.read()
        if not validate_file_size(len(file_content), settings.max_file_size):
            raise ValidationError(
                f"File must be non-empty and at most {format_file_size(settings.max_file_size)}",
                field="pdf"
            )

        staged_path = staged_upload_path(settings.upload_dir, pdf.filename)
        try:
            staged_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(staged_path.write_bytes, file_content)

            result = await pipeline.ingest(
                document=staged_path,
                name=scheme_name,
                benefits=benefits,
                filters=filters,
                required_documents=parse_comma_list(required_documents),
                source_ref=sanitize_filename(pdf.filename)
            )
        finally:
            staged_path.unlink(missing_ok=True)

        return {
            "success": True,
            "message": "Scheme ingested successfully",
            **result.model_dump()
        }

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error ingesting scheme PDF: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to ingest scheme: {str(e)}")
