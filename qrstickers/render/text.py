"""
텍스트 레이아웃: overflow 처리 + 폰트 로딩.

PNG/SVG가 같은 줄바꿈/축소 결과를 쓰도록 한 곳에 둔다.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from PIL import ImageFont

logger = logging.getLogger(__name__)

LINE_HEIGHT = 1.16

# 폰트 패밀리 → TrueType 후보 (regular, bold)
_FONT_FILES: dict[str, tuple[list[str], list[str]]] = {
    "arial": (["arial.ttf", "Arial.ttf", "DejaVuSans.ttf"], ["arialbd.ttf", "Arial Bold.ttf", "DejaVuSans-Bold.ttf"]),
    "helvetica": (["Helvetica.ttf", "DejaVuSans.ttf"], ["Helvetica-Bold.ttf", "DejaVuSans-Bold.ttf"]),
    "courier new": (["cour.ttf", "Courier New.ttf", "DejaVuSansMono.ttf"], ["courbd.ttf", "DejaVuSansMono-Bold.ttf"]),
    "times new roman": (["times.ttf", "Times New Roman.ttf", "DejaVuSerif.ttf"], ["timesbd.ttf", "DejaVuSerif-Bold.ttf"]),
}
_DEFAULT_FILES = (["DejaVuSans.ttf"], ["DejaVuSans-Bold.ttf"])


@dataclass
class TextLayout:
    lines: list[str]
    font_scale: float = 1.0


def layout_text(text: str, max_length: int | None, overflow: str) -> TextLayout:
    """
    maxLength/overflow 적용.

    - truncate: 앞에서 max_length 글자만
    - wrap: max_length 글자 단위 줄바꿈 (기존 개행 유지)
    - scale: 폰트를 max_length / len(text) 배로 축소
    """
    lines = text.split("\n")
    if not max_length or max_length <= 0:
        return TextLayout(lines=lines)

    if overflow == "wrap":
        wrapped: list[str] = []
        for line in lines:
            if not line:
                wrapped.append("")
                continue
            wrapped.extend(line[i:i + max_length] for i in range(0, len(line), max_length))
        return TextLayout(lines=wrapped)

    if overflow == "scale":
        longest = max(len(line) for line in lines)
        if longest > max_length:
            return TextLayout(lines=lines, font_scale=max_length / longest)
        return TextLayout(lines=lines)

    return TextLayout(lines=[line[:max_length] for line in lines])


def is_bold(font_weight: str) -> bool:
    weight = str(font_weight).lower()
    return weight == "bold" or (weight.isdigit() and int(weight) >= 600)


@lru_cache(maxsize=64)
def load_font(family: str, bold: bool, size_px: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Pillow 폰트 로드.

    시스템에 후보 TrueType이 하나도 없으면 Pillow 내장 기본 폰트 사용.
    """
    regular, bold_files = _FONT_FILES.get(family.lower(), _DEFAULT_FILES)
    candidates = (bold_files + regular) if bold else regular
    for filename in candidates:
        try:
            return ImageFont.truetype(filename, size_px)
        except OSError:
            continue
    logger.debug(f"No TrueType font for {family!r}, using Pillow default")
    return ImageFont.load_default(size=size_px)
