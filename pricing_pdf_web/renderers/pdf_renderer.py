"""
Fixed-template PDF report: one A4 page per domain, drawn with Pillow and
saved as a multi-page PDF.
"""
from __future__ import annotations

import io
import textwrap
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps

from pricing_pdf_web.domain.models import DomainResult

DPI = 150
PAGE_SIZE = (1240, 1754)            # A4 portrait at 150 dpi
MARGIN = 50
CONTENT_WIDTH = PAGE_SIZE[0] - 2 * MARGIN

INK = (17, 24, 39)
MUTED = (55, 65, 81)
FAINT = (107, 114, 128)
ALERT = (153, 27, 27)
FRAME = (229, 231, 235)
WHITE = (255, 255, 255)


def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


class PdfReportRenderer:
    """Report assembler: ordered DomainResults -> PDF bytes."""

    def __init__(self) -> None:
        self._title_font = _font(36)
        self._text_font = _font(20)
        self._caption_font = _font(18)
        self._small_font = _font(16)

    def render(self, results: Sequence[DomainResult]) -> bytes:
        if not results:
            raise ValueError("Cannot render a report without domain results.")

        pages = [self._render_page(r) for r in results]
        buff = io.BytesIO()
        pages[0].save(
            buff,
            format="PDF",
            save_all=True,
            append_images=pages[1:],
            resolution=float(DPI),
        )
        return buff.getvalue()

    # -----------------------------
    # Page template
    # -----------------------------
    def _render_page(self, result: DomainResult) -> Image.Image:
        page = Image.new("RGB", PAGE_SIZE, WHITE)
        draw = ImageDraw.Draw(page)

        y = self._draw_header(draw, result)

        if not result.ok:
            self._draw_error(draw, result, y + 30)
            return page

        shots = result.screenshots
        desktop_height = 760
        self._draw_screenshot(page, draw, "Desktop", shots.get("desktop_viewport"),
                              (MARGIN, y + 20, CONTENT_WIDTH, desktop_height))

        row_top = y + 20 + desktop_height + 30
        row_height = PAGE_SIZE[1] - MARGIN - 40 - row_top
        gap = 30
        col_width = (CONTENT_WIDTH - 2 * gap) // 3
        row = [
            ("Mobile", shots.get("mobile_viewport")),
            ("Mobile (full page)", shots.get("mobile_full_page")),
            ("Desktop (full page)", shots.get("desktop_full_page")),
        ]
        for i, (caption, png) in enumerate(row):
            x = MARGIN + i * (col_width + gap)
            self._draw_screenshot(page, draw, caption, png, (x, row_top, col_width, row_height))

        draw.text(
            (MARGIN, PAGE_SIZE[1] - MARGIN - 20),
            f"HTTP fallback used: {'yes' if result.http_fallback_used else 'no'}",
            font=self._small_font,
            fill=FAINT,
        )
        return page

    def _draw_header(self, draw: ImageDraw.ImageDraw, result: DomainResult) -> int:
        y = MARGIN
        draw.text((MARGIN, y), result.domain, font=self._title_font, fill=INK)
        y += 56

        status = result.status
        if result.error_code is not None:
            status = f"{status} ({result.error_code.value})"

        lines = [
            f"Timestamp: {result.timestamp_local}",
            f"URL: {result.resolved_url or result.target_url}",
            f"Status: {status}",
        ]
        for line in lines:
            for chunk in textwrap.wrap(line, width=100) or [""]:
                draw.text((MARGIN, y), chunk, font=self._text_font, fill=MUTED)
                y += 28
        return y

    def _draw_error(self, draw: ImageDraw.ImageDraw, result: DomainResult, y: int) -> None:
        code = result.error_code.value if result.error_code else "UNKNOWN"
        draw.text(
            (MARGIN, y),
            f"Pricing page not found or unavailable. Reason: {code}",
            font=self._text_font,
            fill=ALERT,
        )
        y += 40
        for chunk in textwrap.wrap(result.error_message or "", width=110)[:30]:
            draw.text((MARGIN, y), chunk, font=self._small_font, fill=FAINT)
            y += 24

    def _draw_screenshot(
        self,
        page: Image.Image,
        draw: ImageDraw.ImageDraw,
        caption: str,
        png: Optional[bytes],
        box: Tuple[int, int, int, int],
    ) -> None:
        x, y, width, height = box
        draw.text((x, y), caption, font=self._caption_font, fill=INK)

        image_top = y + 28
        image_height = height - 28
        draw.rectangle((x, image_top, x + width, image_top + image_height), outline=FRAME, width=1)

        if not png:
            draw.text((x + 12, image_top + 12), "Screenshot unavailable", font=self._small_font, fill=FAINT)
            return

        with Image.open(io.BytesIO(png)) as shot:
            fitted = ImageOps.contain(shot.convert("RGB"), (width - 2, image_height - 2))
        offset_x = x + 1 + (width - 2 - fitted.width) // 2
        offset_y = image_top + 1 + (image_height - 2 - fitted.height) // 2
        page.paste(fitted, (offset_x, offset_y))

