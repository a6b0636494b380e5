"""
재시도 로직 유틸리티.

원격 이미지(회사 로고 URL 등) 로드 실패 시 자동 재시도.
4xx처럼 다시 시도해도 결과가 같은 에러는 should_retry로 걸러낸다.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    should_retry: Callable[[Exception], bool] | None = None,
    **kwargs: Any,
) -> T:
    """
    지수 백오프를 사용한 재시도.

    Args:
        func: 재시도할 비동기 함수
        *args: func에 전달할 위치 인자
        max_retries: 최대 재시도 횟수 (총 시도 = max_retries + 1)
        initial_delay: 첫 재시도 전 대기 시간(초)
        max_delay: 최대 대기 시간(초)
        exponential_base: 지수 백오프 기수
        exceptions: 재시도 대상 예외 타입들
        should_retry: False를 반환하면 남은 시도와 무관하게 즉시 raise
        **kwargs: func에 전달할 키워드 인자

    Returns:
        func의 반환값

    Raises:
        마지막 시도(또는 재시도 불가 판정)에서 발생한 예외

    Usage:
        data = await retry_with_exponential_backoff(
            fetch, url, max_retries=2, exceptions=(httpx.HTTPError,),
            should_retry=is_transient_http_error,
        )
    """
    delay = initial_delay
    attempt = 0

    while True:
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"Retry succeeded on attempt {attempt + 1}/{max_retries + 1}")
            return result

        except exceptions as e:
            if should_retry is not None and not should_retry(e):
                logger.warning(f"Not retrying after {type(e).__name__}: {e}")
                raise
            if attempt >= max_retries:
                logger.warning(f"All {max_retries + 1} attempts failed. Last error: {e}")
                raise

            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
            attempt += 1


def is_transient_http_error(error: Exception) -> bool:
    """
    재시도할 가치가 있는 HTTP 에러인지.

    응답 상태가 있는 에러는 5xx/429만 재시도, 연결/타임아웃 에러는 항상 재시도.
    """
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        return True
    return status >= 500 or status == 429
