# core/attachments.py
import logging
from typing import Iterable, List
import fitz
from fastapi import status
from config.settings import settings
from model.attachment import Attachment
from util.errors import AttachmentRejected
from util.timing import timed

logger = logging.getLogger(__name__)


def pdf_page_count(attachment: Attachment) -> int:
    """
    Page count from the parsed document.
    Bytes PyMuPDF cannot open as a PDF are rejected.
    """
    try:
        with timed(logger, "pdf.open", logging.DEBUG, file=attachment.filename):
            with fitz.open(stream=attachment.content, filetype="pdf") as doc:
                return doc.page_count
    except Exception as e:
        # do not log payloads
        logger.warning(
            "pdf.invalid file=%s err=%s", attachment.filename, type(e).__name__
        )
        raise AttachmentRejected(
            "Invalid PDF file. Please upload a valid PDF.",
            filename=attachment.filename,
        ) from e


def validate_attachment(attachment: Attachment) -> Attachment:
    if attachment.size == 0:
        raise AttachmentRejected(
            f"{attachment.filename} is empty.", filename=attachment.filename
        )

    if attachment.size > settings.MAX_ATTACHMENT_BYTES:
        raise AttachmentRejected(
            f"File too big. Files can be at most {settings.MAX_ATTACHMENT_MB}MB.",
            413,
            filename=attachment.filename,
        )

    if attachment.extension not in settings.ALLOWED_ATTACHMENT_EXTENSIONS:
        raise AttachmentRejected(
            "Unsupported file type. Only images and PDFs can be attached.",
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            filename=attachment.filename,
        )

    if attachment.extension == ".pdf":
        pages = pdf_page_count(attachment)
        if pages > settings.MAX_PDF_PAGES:
            raise AttachmentRejected(
                f"Too many pages. PDFs can have at most {settings.MAX_PDF_PAGES} pages.",
                filename=attachment.filename,
            )
        logger.info("pdf.pages file=%s count=%d", attachment.filename, pages)
    return attachment


def validate_attachments(attachments: Iterable[Attachment]) -> List[Attachment]:
    out = [validate_attachment(a) for a in attachments]
    if out:
        logger.info(
            "attachments.ok count=%d bytes=%d", len(out), sum(a.size for a in out)
        )
    return out
