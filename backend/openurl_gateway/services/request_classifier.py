"""
Request Classifier - first pipeline stage.

RESPONSIBILITIES:
1. Parse the query into an OpenURL ContextObject
2. Resolve the service symbol (res.org metadata, else request path)
3. Override the requester id from a trusted header when configured
4. Apply the logout control flag to the shared session
5. Derive no_pickup_location and the form trial count

Produces a fully resolved RequestContext; the service symbol and its
configuration are fixed here for the rest of the request.
"""

import logging
from typing import Dict, List, Mapping

from openurl_gateway.pipeline.request_context import PipelineResources, RequestContext
from openurl_gateway.services.context_object import ContextObject
from openurl_gateway.services.id_transform import id_transform
from openurl_gateway.services.pipeline_errors import UnsupportedServiceError

logger = logging.getLogger(__name__)

# Logout flag value that clears the token; any other truthy value poisons it
LOGOUT_CLEAR = "1"


def resolve_symbol(metadata: Mapping[str, Mapping[str, str]], path: str) -> str:
    """Symbol from the res.org metadata field, falling back to the path."""
    return metadata.get("res", {}).get("org") or path.lstrip("/")


def parse_trial_count(value: str | None) -> int:
    try:
        return max(int(value or 0), 0)
    except ValueError:
        return 0


def classify_request(
    raw_query: Dict[str, str],
    path: str,
    headers: Mapping[str, List[str]],
    resources: PipelineResources,
) -> RequestContext:
    """
    Build the RequestContext for one incoming request.

    Args:
        raw_query: Query parameters, one value per name
        path: Request path (e.g. "/ISIL:US-ABC")
        headers: Lowercased header name -> all values received
        resources: Process-wide config, registry and renderer

    Raises:
        UnsupportedServiceError: No session for the symbol and no default
    """
    logger.info("Parse request")

    co = ContextObject(raw_query)
    logger.debug(f"Got ContextObject {co.get_type()} query: {co.get_query()}")

    metadata = co.get_metadata()
    logger.debug(f"metadata: {metadata}")

    logger.info("Check service")
    symbol = resolve_symbol(metadata, path)
    service = resources.registry.lookup(symbol)
    if service is None:
        raise UnsupportedServiceError(symbol)

    service_config = resources.config.service_values(symbol)

    if service_config.req_id_header:
        values = headers.get(service_config.req_id_header.lower(), [])
        if len(values) == 1:
            requester_id = id_transform(values[0], service_config)
            logger.info(f"Override requester id with {requester_id}")
            co.set_admindata("req", "id", requester_id)

    logger.debug(f"admindata: {co.get_admindata()}")

    logout = metadata.get("svc", {}).get("logout")
    if logout == LOGOUT_CLEAR:
        logger.info(f"Clearing token for service '{service.symbol}'")
        service.logout()
    elif logout:
        logger.warning(f"Invalidating token for service '{service.symbol}'")
        service.invalidate()

    no_pickup_location = bool(
        service_config.digital_only or metadata.get("svc", {}).get("noPickupLocation")
    )

    return RequestContext(
        raw_query=dict(raw_query),
        context_object=co,
        service_symbol=symbol,
        service_config=service_config,
        service=service,
        no_pickup_location=no_pickup_location,
        trial_count=parse_trial_count(co.get_query().get("svc.ntries")),
    )
