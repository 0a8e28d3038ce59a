import logging
import fitz  # pymupdf

from screener.core.exceptions import ScreeningError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


class PDFExtractionError(ScreeningError):
    user_message = "The file could not be read as a PDF."


def is_pdf(filename: str, content_type: str = None, data: bytes = None) -> bool:
    """Accept `<anything>.pdf` files; when bytes are given they must start with %PDF."""
    if not filename or not filename.lower().endswith(".pdf"):
        return False
    if content_type and content_type not in ("application/pdf", "application/octet-stream"):
        return False
    if data is not None and not data.startswith(PDF_MAGIC):
        return False
    return True


def candidate_name_from_filename(filename: str) -> str:
    """Display name is the file name without its .pdf extension."""
    name = filename.rsplit("/", 1)[-1]
    if name.lower().endswith(".pdf"):
        name = name[:-4]
    return name.strip() or "Unknown"


def placeholder_email(candidate_name: str) -> str:
    return f"{'.'.join(candidate_name.lower().split())}@example.com"


def extract_text_from_pdf(data: bytes) -> str:
    """Extract the text of every page of a PDF held in memory."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        logger.warning(f"PDF open failed: {e}")
        raise PDFExtractionError("Could not open PDF") from e

    text = ""
    with doc:
        for page in doc:
            text += page.get_text()

    return text.strip()
