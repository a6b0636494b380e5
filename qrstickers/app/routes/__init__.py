"""
FastAPI Routes.

API 라우트 (REST)
"""

from . import export, templates

__all__ = ["export", "templates"]
