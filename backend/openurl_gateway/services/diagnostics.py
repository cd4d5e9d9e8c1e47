# openurl_gateway/services/diagnostics.py
import logging
from typing import Optional

from openurl_gateway.pipeline.request_context import (
    OutcomeKind,
    PipelineOutcome,
    PipelineResources,
    RequestContext,
)

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "text/json"

# Values of the admin svc_id flag
DUMP_CONTEXT_OBJECT = "contextObject"
DUMP_RESHARE_REQUEST = "reshareRequest"
JSON_RESULT = "json"


async def maybe_return_admin_data(
    ctx: RequestContext, resources: PipelineResources
) -> Optional[PipelineOutcome]:
    """Return the parsed {admindata, metadata} when svc_id=contextObject."""
    if ctx.admin_id != DUMP_CONTEXT_OBJECT:
        return None

    logger.info("Returning parsed context object")
    return PipelineOutcome(
        kind=OutcomeKind.DIAGNOSTIC_DUMP,
        content=ctx.context_object.snapshot(),
        media_type=JSON_MEDIA_TYPE,
    )
