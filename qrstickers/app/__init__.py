"""
App layer: export API 서버 (FastAPI).

역할:
- HTTP 요청 → BatchExporter / TemplateMatcher 호출
- StickerExportError → HTTPException 변환
- ⚠️ 렌더/매칭 로직 없음 (core, render, export에 위임)
"""
