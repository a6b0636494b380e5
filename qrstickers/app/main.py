"""
FastAPI 애플리케이션 진입점.

실행:
- 개발: uvicorn qrstickers.app.main:app --reload
- 프로덕션: uvicorn qrstickers.app.main:app
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import yaml
from fastapi import FastAPI

from qrstickers.app.routes import export, templates
from qrstickers.domain.schemas import ExportSettings, PdfSettings
from qrstickers.export.bulk import BatchExporter
from qrstickers.export.context import InMemoryInventory, InventoryRepository
from qrstickers.templates.store import FileTemplateStore, InMemoryTemplateStore, TemplateRepository

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent

# =============================================================================
# Configuration
# =============================================================================


def load_config(config_path: Path | None = None) -> dict:
    """설정 파일 로드."""
    if config_path is None:
        # 프로젝트 루트의 default.yaml
        config_path = PROJECT_ROOT / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data: dict[Any, Any] = yaml.safe_load(f) or {}
        return data


def _default_templates(config: dict) -> TemplateRepository:
    """paths.templates_root가 있으면 파일 저장소, 없으면 메모리 저장소."""
    paths = config.get("paths") or {}
    root_name = paths.get("templates_root")
    if root_name:
        templates_root = PROJECT_ROOT / root_name
        if templates_root.is_dir():
            return FileTemplateStore(templates_root, lock_timeout=paths.get("lock_timeout"))
    return InMemoryTemplateStore()


def _logs_dir(config: dict) -> Path | None:
    logs_root = (config.get("paths") or {}).get("logs_root")
    return PROJECT_ROOT / logs_root if logs_root else None


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    애플리케이션 생명주기 관리.

    저장소/exporter는 create_app에서 이미 준비됨 (TestClient가 lifespan 없이 써도 동작).
    """
    settings: ExportSettings = app.state.settings
    logger.info(
        f"Sticker export service started (dpi {settings.min_dpi}-{settings.max_dpi}, "
        f"concurrency {settings.concurrency})"
    )

    yield

    logger.info("Sticker export service stopped")


# =============================================================================
# App Factory
# =============================================================================


def create_app(
    inventory: InventoryRepository | None = None,
    template_store: TemplateRepository | None = None,
    config: dict | None = None,
) -> FastAPI:
    """
    앱 생성.

    Args:
        inventory: 인벤토리 저장소 (기본: 빈 InMemoryInventory)
        template_store: 템플릿 저장소 (기본: paths.templates_root 또는 메모리)
        config: 설정 dict (기본: default.yaml)
    """
    config = load_config() if config is None else config

    app = FastAPI(
        title="QR Sticker Export",
        description="디바이스 인벤토리 → 스티커 PNG/SVG/PDF",
        version="0.1.0",
        lifespan=lifespan,
    )

    settings = ExportSettings.from_config(config)
    pdf_settings = PdfSettings.from_config(config)
    app.state.config = config
    app.state.settings = settings
    app.state.inventory = inventory if inventory is not None else InMemoryInventory()
    app.state.templates = template_store if template_store is not None else _default_templates(config)
    app.state.exporter = BatchExporter(
        app.state.inventory,
        app.state.templates,
        settings=settings,
        pdf_settings=pdf_settings,
        logs_dir=_logs_dir(config),
    )

    # API 라우트
    app.include_router(templates.api_router, prefix="/api/templates", tags=["Templates API"])
    app.include_router(export.api_router, prefix="/api/export", tags=["Export API"])

    @app.get("/health")
    async def health() -> dict[str, str]:
        """헬스 체크."""
        return {"status": "ok"}

    return app


app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qrstickers.app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
