"""
Render layer: 스티커 PNG/SVG/PDF 출력 생성.

역할:
- 바인딩된 문서 + 동적 이미지 → 최종 바이트
- Pillow (PNG), xml.etree (SVG), reportlab (PDF), qrcode (QR 생성)
"""

from .images import ImageLoader, ResolvedImage
from .pdf import PdfSticker, StickerSize, check_page_fit, compose_pdf, compute_grid
from .renderer import RenderOutput, StickerRenderer

__all__ = [
    "StickerRenderer",
    "RenderOutput",
    "ImageLoader",
    "ResolvedImage",
    "StickerSize",
    "PdfSticker",
    "check_page_fit",
    "compute_grid",
    "compose_pdf",
]
