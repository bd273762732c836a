"""
Request/response correlation for completion requests on one connection
"""
import asyncio
import itertools
import logging
from typing import Dict, List, Optional

from .models import CompletionResponse, CompletionSuggestion

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class CompletionCorrelator:
    """
    Pairs outbound completion requests with their asynchronous responses.

    Request ids are strictly increasing per correlator (one per connection).
    Issuing a new id supersedes every older pending request: a late response
    for a superseded id is ignored. Nothing is cancelled at the provider; the
    stale call simply completes unobserved.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._counter = itertools.count(1)
        self._latest_id = 0
        self._pending: Dict[int, asyncio.Future] = {}

    def next_request_id(self) -> int:
        """Issue a new id; waiters of every older request wake up empty-handed"""
        self._latest_id = next(self._counter)
        for request_id, future in self._pending.items():
            if not future.done():
                logger.debug(f"[Completion] Request {request_id} superseded by {self._latest_id}")
                future.set_result(None)
        return self._latest_id

    @property
    def latest_request_id(self) -> int:
        return self._latest_id

    def expect(self, request_id: int) -> asyncio.Future:
        """Register interest in the response to request_id"""
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def is_stale(self, request_id: int) -> bool:
        return request_id != self._latest_id

    def resolve(self, response: CompletionResponse) -> bool:
        """
        Deliver a response to its waiter

        Returns:
            True if a current waiter received it; False if it was discarded
        """
        future = self._pending.get(response.requestId)
        if future is None or future.done():
            logger.debug(f"[Completion] Discarding response for unknown request {response.requestId}")
            return False

        if self.is_stale(response.requestId):
            logger.debug(
                f"[Completion] Discarding stale response {response.requestId} "
                f"(latest is {self._latest_id})"
            )
            return False

        future.set_result(response)
        return True

    async def wait(self, request_id: int, timeout: Optional[float] = None) -> List[CompletionSuggestion]:
        """
        Wait for the suggestions of a request

        Returns:
            The suggestions, or an empty list when the request timed out, was
            superseded, or its response was never registered
        """
        future = self._pending.get(request_id)
        if future is None:
            future = self.expect(request_id)

        try:
            response = await asyncio.wait_for(
                asyncio.shield(future),
                timeout=self.timeout_seconds if timeout is None else timeout,
            )
        except asyncio.TimeoutError:
            logger.debug(f"[Completion] Request {request_id} timed out, no suggestions")
            return []
        finally:
            self._pending.pop(request_id, None)

        if response is None:
            return []
        return response.suggestions

    def pending_count(self) -> int:
        return len(self._pending)
