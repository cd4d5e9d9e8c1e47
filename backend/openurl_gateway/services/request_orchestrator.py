"""
Request Orchestrator

RESPONSIBILITIES:
1. Classify the request (stop if the service is unsupported)
2. Render a form if information is missing (stop)
3. Return the parsed context object if asked to (stop)
4. Build the reshare request, returning it if asked to (stop)
5. Submit it and render the outcome (always stops)

Stages run strictly in order over one shared RequestContext. Each stage
returns a PipelineOutcome to end the pipeline or None to hand over to the
next one.
"""

import logging
import time
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from openurl_gateway.pipeline.request_context import (
    PipelineOutcome,
    PipelineResources,
    RequestContext,
)
from openurl_gateway.services.completeness_gate import maybe_render_form
from openurl_gateway.services.diagnostics import maybe_return_admin_data
from openurl_gateway.services.request_builder import construct_and_maybe_return_request
from openurl_gateway.services.request_classifier import classify_request
from openurl_gateway.services.submission import post_reshare_request


# =============================================================================
# LOGGING
# =============================================================================

logger = logging.getLogger(__name__)


Stage = Callable[[RequestContext, PipelineResources], Awaitable[Optional[PipelineOutcome]]]


# =============================================================================
# PIPELINE STAGES (in execution order)
# =============================================================================

STAGES: List[Stage] = [
    maybe_render_form,
    maybe_return_admin_data,
    construct_and_maybe_return_request,
    post_reshare_request,
]


class RequestOrchestrator:
    """
    Runs one request through the stage chain.

    Usage:
        orchestrator = RequestOrchestrator(resources)
        outcome = await orchestrator.handle(query, "/ISIL:US-ABC", headers)
    """

    def __init__(self, resources: PipelineResources, stages: Optional[List[Stage]] = None):
        self.resources = resources
        self.stages = stages if stages is not None else STAGES

    async def handle(
        self,
        raw_query: Dict[str, str],
        path: str,
        headers: Mapping[str, List[str]],
    ) -> PipelineOutcome:
        """
        Execute the pipeline for one request.

        Raises:
            UnsupportedServiceError: No service for the resolved symbol
            SubmissionError: Downstream answered with a non-2xx status
            DownstreamConnectionError: Downstream unreachable
        """
        start_time = time.monotonic()

        ctx = classify_request(raw_query, path, headers, self.resources)
        logger.info(f"Pipeline started for service '{ctx.service_symbol}'")

        for stage in self.stages:
            outcome = await stage(ctx, self.resources)
            if outcome is not None:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                logger.info(f"Pipeline finished with {outcome.kind.value} in {duration_ms}ms")
                return outcome

        raise RuntimeError("Pipeline ended without producing an outcome")
