"""
Submission Stage - final pipeline stage.

RESPONSIBILITIES:
1. POST the built request to the service's patron request endpoint
2. Classify the outcome (leading status digit 2 = success)
3. Render it: JSON result document (svc_id=json) or HTML confirmation
   page (good/bad template)
4. Raise SubmissionError on failure, carrying the rendered outcome

A body that is not JSON is rendered as plain text, never an error.
"""

import json
import logging
from typing import Any, Dict

from openurl_gateway.pipeline.request_context import (
    OutcomeKind,
    PipelineOutcome,
    PipelineResources,
    RequestContext,
)
from openurl_gateway.services.diagnostics import JSON_MEDIA_TYPE, JSON_RESULT
from openurl_gateway.services.okapi_session import OkapiResponse
from openurl_gateway.services.pipeline_errors import (
    SUBMISSION_FAILED_MESSAGE,
    PipelineError,
    SubmissionError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ENDPOINTS
# =============================================================================

PATRON_REQUESTS_PATH = "/rs/patronrequests"

# Nonexistent endpoint used to provoke a downstream failure (ctx_FAIL)
FAULT_INJECTION_PATH = "/not-there"


def is_success(status: int) -> bool:
    return str(status)[0] == "2"


def submission_path(ctx: RequestContext, resources: PipelineResources) -> str:
    if not ctx.admindata.get("ctx", {}).get("FAIL"):
        return PATRON_REQUESTS_PATH
    if not resources.config.allow_fault_injection:
        logger.warning("Ignoring ctx_FAIL: fault injection is disabled in configuration")
        return PATRON_REQUESTS_PATH
    logger.warning("ctx_FAIL set: submitting to a nonexistent endpoint")
    return FAULT_INJECTION_PATH


# =============================================================================
# RENDERING
# =============================================================================

def _json_result(ctx: RequestContext, res: OkapiResponse, document: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": res.status,
        "message": res.text,
        "contextObject": ctx.context_object.snapshot(),
        "reshareRequest": document,
    }


async def _page_vars(ctx: RequestContext, res: OkapiResponse) -> Dict[str, Any]:
    page_vars: Dict[str, Any] = {"status": str(res.status)}
    try:
        page_vars["json"] = json.loads(res.text)
    except ValueError:
        page_vars["text"] = res.text

    parsed = page_vars.get("json")
    if not ctx.no_pickup_location and isinstance(parsed, dict):
        try:
            locations = await ctx.service.get_pickup_locations()
        except PipelineError as e:
            logger.warning(f"Pickup location name unavailable: {e.message}")
            return page_vars
        slug = parsed.get("pickupLocationSlug")
        location = next((loc for loc in locations if slug in (loc["code"], loc["id"])), None)
        if location:
            page_vars["pickupLocationName"] = location["name"]

    return page_vars


# =============================================================================
# STAGE
# =============================================================================

async def post_reshare_request(
    ctx: RequestContext, resources: PipelineResources
) -> PipelineOutcome:
    logger.info("Post mod-rs request")
    document = ctx.reshare_request.to_document()
    path = submission_path(ctx, resources)

    res = await ctx.service.post(path, document)
    logger.info(f"Sent request, status {res.status}")

    ok = is_success(res.status)
    if not ok:
        logger.error(f"POST error {res.status}: {res.text}")

    if ctx.admin_id == JSON_RESULT:
        content: Any = _json_result(ctx, res, document)
        media_type = JSON_MEDIA_TYPE
    else:
        page_vars = await _page_vars(ctx, res)
        template = resources.renderer.get_template("good" if ok else "bad")
        content = template(page_vars)
        media_type = "text/html"

    if ok:
        return PipelineOutcome(
            kind=OutcomeKind.SUBMISSION_SUCCESS,
            content=content,
            media_type=media_type,
        )

    outcome = PipelineOutcome(
        kind=OutcomeKind.SUBMISSION_FAILURE,
        content=content,
        media_type=media_type,
        status_code=SubmissionError.status_code,
        headers={"X-Error": SUBMISSION_FAILED_MESSAGE},
    )
    raise SubmissionError(res.status, res.text, outcome)
