from qrstickers.utils.retry import is_transient_http_error, retry_with_exponential_backoff

__all__ = ["is_transient_http_error", "retry_with_exponential_backoff"]
