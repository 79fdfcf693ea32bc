"""Two-stage analysis pipeline for one task.

Steps (progress in brackets):
1. claimed by the worker                                  [10]
2. build stage one prompt from the caller context          [30]
   call the analysis stage                                 [60]
3. decode the reply; unusable text fails with ParseError
4. sanitize into the stage one record                      [80]
5. build stage two prompt from the sanitized record        [90]
   call the recommendation stage
6. decode and sanitize stage two
7. assemble the final report (the worker completes it)     [100]

Stage calls get a deadline each and a bounded retry for transport failures
and timeouts. Parse failures are never retried.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.clients.base import StageClient
from app.clients.factory import StageClients
from app.errors import RETRYABLE_ERRORS, ParseError
from app.jobs.cancellation import CancellationToken
from app.jobs.models import AnalysisTask
from app.pipeline.decode import Unparseable, decode_response
from app.pipeline.definitions import get_definition

logger = logging.getLogger(__name__)

ProgressReporter = Callable[[int], Awaitable[None]]


class AnalysisPipeline:
    def __init__(
        self,
        clients: StageClients,
        stage_one_timeout: float = 180.0,
        stage_two_timeout: float = 60.0,
        max_attempts: int = 2,
        retry_min_wait: float = 2.0,
        retry_max_wait: float = 10.0,
    ):
        self.clients = clients
        self.stage_one_timeout = stage_one_timeout
        self.stage_two_timeout = stage_two_timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

    @classmethod
    def from_settings(cls, clients: StageClients, config) -> "AnalysisPipeline":
        return cls(
            clients,
            stage_one_timeout=config.stage_one_timeout_s,
            stage_two_timeout=config.stage_two_timeout_s,
            max_attempts=config.stage_max_attempts,
            retry_min_wait=config.stage_retry_min_wait_s,
            retry_max_wait=config.stage_retry_max_wait_s,
        )

    async def run(
        self,
        task: AnalysisTask,
        report: ProgressReporter,
        token: CancellationToken,
    ) -> Dict[str, Any]:
        """Run both stages for ``task`` and return the final report as a JSON-ready dict."""
        definition = get_definition(task.kind)
        context = task.input

        prompt = definition.stage_one_prompt(context)
        await report(30)
        raw = await self._call_stage(
            self.clients.analysis, prompt, definition.images_for(context),
            self.stage_one_timeout, token,
        )
        await report(60)

        stage_one = definition.sanitize_stage_one(self._decode(raw, self.clients.analysis.name), context)
        if definition.check_stage_one is not None:
            definition.check_stage_one(stage_one)
        await report(80)

        prompt = definition.stage_two_prompt(stage_one)
        await report(90)
        raw = await self._call_stage(
            self.clients.recommendation, prompt, None, self.stage_two_timeout, token,
        )
        stage_two = definition.sanitize_stage_two(self._decode(raw, self.clients.recommendation.name))

        final = definition.assemble(stage_one, stage_two)
        return final.model_dump(by_alias=True)

    async def _call_stage(
        self,
        client: StageClient,
        prompt: str,
        images: Optional[List[str]],
        timeout: float,
        token: CancellationToken,
    ) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.retry_min_wait, max=self.retry_max_wait),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=_log_retry(client.name),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                token.raise_if_cancelled(client.name)
                return await token.run(client.generate(prompt, images), timeout, client.name)
        raise AssertionError("unreachable")  # AsyncRetrying either returns or reraises

    async def aclose(self) -> None:
        await self.clients.aclose()

    @staticmethod
    def _decode(raw: str, stage: str) -> Dict[str, Any]:
        decoded = decode_response(raw)
        if isinstance(decoded, Unparseable):
            logger.warning("%s stage reply unusable (%s): %r", stage, decoded.reason, decoded.excerpt)
            raise ParseError(f"{stage} stage reply is not usable JSON: {decoded.reason}", stage=stage)
        return decoded.data


def _log_retry(stage: str):
    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s stage attempt %d failed (%s), retrying",
            stage, retry_state.attempt_number, exc,
        )
    return _before_sleep
