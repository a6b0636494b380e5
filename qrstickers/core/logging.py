"""
Export run logging: 배치 실행 로그, 경고, 실패 기록

규칙:
- 경고 필수 컨텍스트: code, message, device_id (가능하면 element_id)
- 실패 기록은 StickerExportError.to_dict() 그대로
- 타임스탬프는 로그에만 (렌더 결과에는 절대 포함하지 않음)
"""

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from qrstickers.core.ids import generate_run_id
from qrstickers.domain.schemas import ExportJob, ExportRunLog, WarningLog

logger = logging.getLogger(__name__)


def create_export_log(job: ExportJob) -> ExportRunLog:
    """
    새 ExportRunLog 생성.

    Args:
        job: 실행할 ExportJob

    Returns:
        초기화된 ExportRunLog
    """
    return ExportRunLog(
        run_id=generate_run_id(),
        started_at=datetime.now(UTC).isoformat(),
        format=job.format.value,
        device_count=len(job.device_ids),
    )


def emit_warning(
    run_log: ExportRunLog,
    code: str,
    message: str,
    device_id: int | None = None,
    element_id: str | None = None,
) -> None:
    """경고 이벤트 기록."""
    run_log.warnings.append(
        WarningLog(code=code, message=message, device_id=device_id, element_id=element_id)
    )


def record_failure(run_log: ExportRunLog, device_id: int, error: dict[str, Any]) -> None:
    """디바이스 실패 기록."""
    run_log.failures.append({"device_id": device_id, **error})


def complete_export_log(
    run_log: ExportRunLog,
    succeeded: int,
    cancelled: bool = False,
) -> None:
    """
    ExportRunLog 완료 처리.

    result:
        completed - 실패 없음
        partial   - 일부 실패
        failed    - 성공 0건
        cancelled - 취소됨 (실패 없음)
    """
    run_log.finished_at = datetime.now(UTC).isoformat()
    run_log.succeeded = succeeded

    if run_log.failures and succeeded == 0:
        run_log.result = "failed"
    elif run_log.failures:
        run_log.result = "partial"
    elif cancelled:
        run_log.result = "cancelled"
    else:
        run_log.result = "completed"


def atomic_write_json(path: Path, data: dict) -> None:
    """
    원자적 JSON 쓰기 (temp → rename).

    실패 시 temp 파일 삭제, 기존 파일 유지.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError as e:
                logger.warning(f"fsync failed for {path}: {e}")
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()


def save_export_log(run_log: ExportRunLog, logs_dir: Path) -> Path:
    """
    ExportRunLog를 파일로 저장.

    Returns:
        저장된 파일 경로 (logs_dir/export_<run_id>.json)
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"export_{run_log.run_id}.json"
    atomic_write_json(log_path, run_log.to_dict())
    return log_path


def load_export_log(log_path: Path) -> dict[str, Any]:
    data: dict[str, Any] = json.loads(log_path.read_text(encoding="utf-8"))
    return data
