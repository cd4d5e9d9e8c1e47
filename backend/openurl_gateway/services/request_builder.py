"""
Request Builder - RequestContext → ReshareRequest.

Deterministic: the same context always yields the same document.
Applies the service-specific overrides on top of the mechanical mapping
in ReshareRequest.from_context_object:
- requestingInstitutionSymbol: the service symbol, namespaced unless it
  already carries a namespace
- deliveryMethod: forced to URL for digital-only services
"""

import logging
from typing import Optional

from openurl_gateway.models.reshare_request import ReshareRequest
from openurl_gateway.pipeline.request_context import (
    OutcomeKind,
    PipelineOutcome,
    PipelineResources,
    RequestContext,
)
from openurl_gateway.services.diagnostics import DUMP_RESHARE_REQUEST, JSON_MEDIA_TYPE

logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = ":"
DIGITAL_DELIVERY_METHOD = "URL"


def requesting_institution_symbol(symbol: str, namespace: str) -> str:
    if NAMESPACE_SEPARATOR in symbol:
        return symbol
    return f"{namespace}{NAMESPACE_SEPARATOR}{symbol}"


def build_reshare_request(ctx: RequestContext, namespace: str) -> ReshareRequest:
    request = ReshareRequest.from_context_object(ctx.context_object)
    request.requestingInstitutionSymbol = requesting_institution_symbol(
        ctx.service_symbol, namespace
    )
    if ctx.service_config.digital_only:
        request.deliveryMethod = DIGITAL_DELIVERY_METHOD
    return request


async def construct_and_maybe_return_request(
    ctx: RequestContext, resources: PipelineResources
) -> Optional[PipelineOutcome]:
    logger.info("Construct reshare request")
    request = build_reshare_request(ctx, resources.config.requester_namespace)
    logger.debug(f"Reshare request: {request.to_document()}")

    if ctx.admin_id == DUMP_RESHARE_REQUEST:
        return PipelineOutcome(
            kind=OutcomeKind.BUILT_REQUEST_DUMP,
            content=request.to_document(),
            media_type=JSON_MEDIA_TYPE,
        )

    ctx.reshare_request = request
    return None
