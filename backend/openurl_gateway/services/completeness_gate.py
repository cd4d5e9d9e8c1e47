"""
Completeness Gate - decides between rendering a form and continuing.

A form is shown when:
- the request has no title of any kind (form1, full bibliographic form)
- the query carries `confirm` (re-display for review, even when complete)
- a pickup location is required and none has been chosen (form2)

Every query parameter that is not one of the form's own fields is carried
through the form as a hidden input, so nothing the caller sent is lost on
resubmission.
"""

import logging
from typing import Any, Dict, List, Optional

from markupsafe import Markup

from openurl_gateway.pipeline.request_context import (
    OutcomeKind,
    PipelineOutcome,
    PipelineResources,
    RequestContext,
)

logger = logging.getLogger(__name__)


# =============================================================================
# FORM FIELDS
# =============================================================================

COMMON_FORM_FIELDS = ["svc.pickupLocation", "rft.volume", "svc.note"]
FORM1_FIELDS = COMMON_FORM_FIELDS + [
    "rft.title", "rft.au", "rft.date", "rft.pub", "rft.place",
    "rft.edition", "rft.isbn", "rft.oclc",
]
FORM2_FIELDS = COMMON_FORM_FIELDS + ["svc.neededBy"]

TITLE_FALLBACKS = ("rft.btitle", "rft.atitle", "rft.jtitle")
AUTHOR_FALLBACKS = ("rft.creator", "rft.aulast", "rft.aufirst")

TRIAL_COUNT_FIELD = "svc.ntries"
CONFIRM_PARAM = "confirm"


# =============================================================================
# HELPERS
# =============================================================================

def needs_form(ctx: RequestContext) -> bool:
    co = ctx.context_object
    if not co.has_basic_data():
        return True
    if CONFIRM_PARAM in ctx.raw_query:
        return True
    return not ctx.no_pickup_location and not ctx.metadata.get("svc", {}).get("pickupLocation")


def _first_present(query: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        if query.get(key):
            return query[key]
    return None


def hidden_fields(query: Dict[str, Any], form_fields: List[str]) -> Markup:
    """Hidden inputs for every non-form parameter, sorted by name."""
    return Markup("\n").join(
        Markup('<input type="hidden" name="{}" value="{}" />').format(key, query[key])
        for key in sorted(query)
        if key not in form_fields and query[key] is not None
    )


def pickup_location_choices(
    locations: List[Dict[str, str]], chosen: Optional[str]
) -> List[Dict[str, str]]:
    return [
        {
            "id": loc["id"],
            "code": loc["code"],
            "name": loc["name"],
            "selected": "selected" if loc["id"] == chosen else "",
        }
        for loc in locations
    ]


# =============================================================================
# STAGE
# =============================================================================

async def maybe_render_form(
    ctx: RequestContext, resources: PipelineResources
) -> Optional[PipelineOutcome]:
    logger.info("Check metadata to determine if we should render form")
    if not needs_form(ctx):
        return None

    logger.info("Rendering form")
    locations: List[Dict[str, str]] = []
    if not ctx.no_pickup_location:
        locations = await ctx.service.get_pickup_locations()

    query: Dict[str, Any] = ctx.context_object.get_query()
    query.pop(CONFIRM_PARAM, None)
    query[TRIAL_COUNT_FIELD] = str(ctx.trial_count + 1)

    if ctx.context_object.has_basic_data():
        form_name, form_fields = "form2", FORM2_FIELDS
    else:
        form_name, form_fields = "form1", FORM1_FIELDS

    if not query.get("rft.title"):
        query["rft.title"] = _first_present(query, TITLE_FALLBACKS)
    if not query.get("rft.au"):
        query["rft.au"] = _first_present(query, AUTHOR_FALLBACKS)

    chosen = query.get("svc.pickupLocation")
    digital_only = ctx.service_config.digital_only
    data = dict(query)
    data.update({
        "query": query,
        "formName": form_name,
        "allValues": hidden_fields(query, form_fields),
        "digitalOnly": digital_only,
        "noPickupLocation": ctx.trial_count > 0 and not chosen and not digital_only,
        "onePickupLocation": len(locations) == 1,
        "pickupLocations": pickup_location_choices(locations, chosen),
    })

    template = resources.renderer.get_template(form_name)
    return PipelineOutcome(kind=OutcomeKind.RENDERED_FORM, content=template(data))
