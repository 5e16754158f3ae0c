"""Upload API route for source ingestion."""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.utils import secure_filename

from sourcelens.client.ingest import UploadedFile, ingest_upload, validate_upload_batch
from sourcelens.client.routes.config import get_config
from sourcelens.exceptions import SourceLensError, ValidationError
from sourcelens.service.async_helpers import run_async

logger = logging.getLogger(__name__)

upload_bp = Blueprint("upload", __name__)


@upload_bp.route("/api/upload", methods=["POST"])
def upload_documents():
    """Handle source upload and ingestion.

    Expects multipart form data with:
        - files: One to 50 files, each at most 100MB

    Returns:
        JSON response with per-file status
    """
    services = get_config().services
    logger.info("📤 Received document upload request")

    files = [f for f in request.files.getlist("files") if f.filename]
    uploads = [
        UploadedFile(
            file_name=secure_filename(f.filename) or f.filename,
            data=f.read(),
            mime_type=f.mimetype or "application/octet-stream",
        )
        for f in files
    ]

    try:
        validate_upload_batch(uploads)
    except ValidationError as e:
        logger.warning(f"❌ Upload rejected: {e}")
        return jsonify({"success": False, "error": str(e)}), 400

    logger.info(f"📄 Files received: {len(uploads)}")
    results = []
    success_count = 0
    for upload in uploads:
        try:
            documents = run_async(ingest_upload(services.document_store, upload))
        except SourceLensError as e:
            logger.error(f"❌ Error processing {upload.file_name}: {e}", exc_info=True)
            results.append({"filename": upload.file_name, "status": "error", "error": str(e)})
            continue

        if not documents:
            results.append(
                {
                    "filename": upload.file_name,
                    "status": "error",
                    "error": "No extractable text content",
                }
            )
            continue

        success_count += 1
        metadata = documents[0].metadata
        results.append(
            {
                "filename": upload.file_name,
                "status": "success",
                "id": metadata.source_id,
                "chunks": len(documents),
                "url": metadata.file_url,
            }
        )
        logger.info(f"✅ Stored {len(documents)} chunks for {upload.file_name}")

    return jsonify(
        {
            "success": success_count > 0,
            "message": f"Successfully ingested {success_count} of {len(uploads)} documents",
            "details": results,
        }
    )
