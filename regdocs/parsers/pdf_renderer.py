"""PDF page rendering using PyMuPDF and Pillow."""

from io import BytesIO
from typing import List, Optional

import fitz  # PyMuPDF
from PIL import Image

from ..core.config import Settings, get_settings
from ..core.errors import RenderError, RenderErrorKind
from ..core.logging import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF-"


class DocumentRenderer:
    """Converts a PDF payload into one JPEG image per page, in page order."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        dpi: Optional[int] = None,
        jpeg_quality: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        settings = settings or get_settings()
        self.dpi = dpi or settings.render_dpi
        self.jpeg_quality = jpeg_quality or settings.render_jpeg_quality
        self.max_pages = max_pages or settings.render_max_pages

    def can_render(self, payload: bytes) -> bool:
        # Some servers prepend whitespace or a BOM before the header
        return PDF_MAGIC in payload[:1024]

    def render(self, payload: bytes) -> List[bytes]:
        """Render every page of ``payload``; index 0 is the first page."""
        if not self.can_render(payload):
            raise RenderError(RenderErrorKind.UNSUPPORTED_FORMAT, "payload is not a PDF")

        try:
            doc = fitz.open(stream=payload, filetype="pdf")
        except Exception as e:
            raise RenderError(RenderErrorKind.CONVERSION_FAILED, f"cannot open PDF: {e}") from e

        try:
            if doc.needs_pass:
                raise RenderError(RenderErrorKind.UNSUPPORTED_FORMAT, "PDF is password protected")
            if doc.page_count == 0:
                raise RenderError(RenderErrorKind.CONVERSION_FAILED, "PDF has no pages")
            if doc.page_count > self.max_pages:
                raise RenderError(
                    RenderErrorKind.CONVERSION_FAILED,
                    f"{doc.page_count} pages exceeds limit of {self.max_pages}",
                )

            pages = []
            for page_num in range(doc.page_count):
                try:
                    pages.append(self._render_page(doc[page_num]))
                except Exception as e:
                    raise RenderError(
                        RenderErrorKind.CONVERSION_FAILED,
                        f"page {page_num}: {e}",
                    ) from e
        finally:
            doc.close()

        logger.debug("Rendered document", pages=len(pages), dpi=self.dpi)
        return pages

    def _render_page(self, page: "fitz.Page") -> bytes:
        pixmap = page.get_pixmap(dpi=self.dpi, alpha=False)
        image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)

        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality, optimize=True)
        return buffer.getvalue()
