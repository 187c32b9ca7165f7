import asyncio
import logging
from typing import Any, List, Optional

from web3 import AsyncHTTPProvider

logger = logging.getLogger(__name__)

RATE_LIMIT_TOKENS = (
    "rate limit", "too many requests", "daily request count exceeded",
    "exceeded", "request limit", "over capacity",
    "project id request rate exceeded",
)


class AsyncRotatingHTTPProvider(AsyncHTTPProvider):
    """
    Async HTTP provider that rotates between multiple RPC URLs when
    rate-limited or on connection errors. Attempts each URL in order and
    advances on failures. Meant for a single event loop.
    """

    def __init__(self, rpc_urls: List[str], request_kwargs: Optional[dict] = None, retry_delay: float = 0.1):
        urls = list(dict.fromkeys([u.strip() for u in rpc_urls if u and u.strip()]))
        if not urls:
            raise ValueError("rpc_urls must be a non-empty list")
        super().__init__(endpoint_uri=urls[0], request_kwargs=request_kwargs)
        self._urls: List[str] = urls
        self._idx: int = 0
        self.retry_delay = retry_delay

    @property
    def current_url(self) -> str:
        return self._urls[self._idx]

    def _advance(self) -> None:
        self._idx = (self._idx + 1) % len(self._urls)
        self.endpoint_uri = self._urls[self._idx]
        logger.debug("Rotating RPC endpoint to %s", self.endpoint_uri)

    def _should_rotate_on_error(self, error_obj) -> bool:
        if not error_obj or not isinstance(error_obj, dict):
            return False
        msg = str(error_obj.get("message", "")).lower()
        if any(tok in msg for tok in RATE_LIMIT_TOKENS):
            return True
        # Some providers use generic internal error codes for throttling
        return error_obj.get("code") in (-32005, 429)

    async def make_request(self, method, params: Any):  # type: ignore[override]
        attempts = 0
        last_exc: Optional[BaseException] = None
        last_error_resp: Optional[dict] = None
        total = len(self._urls)

        while attempts < total:
            try:
                response = await super().make_request(method, params)
            except Exception as e:  # Connection errors, timeouts, etc.
                logger.warning("RPC %s via %s failed: %s", method, self.endpoint_uri, e)
                last_exc = e
                self._advance()
                attempts += 1
                await asyncio.sleep(self.retry_delay)
                continue
            if isinstance(response, dict) and "error" in response and self._should_rotate_on_error(response["error"]):
                logger.warning("RPC %s rate limited on %s", method, self.endpoint_uri)
                last_error_resp = response
                self._advance()
                attempts += 1
                await asyncio.sleep(self.retry_delay)
                continue
            return response

        # Exhausted all URLs: hand back the last error response, else re-raise
        if last_error_resp is not None:
            return last_error_resp
        raise last_exc
