from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from openurl_gateway.models.reshare_request import ReshareRequest
from openurl_gateway.services.config_manager import ConfigManager, ServiceConfig
from openurl_gateway.services.context_object import ContextObject
from openurl_gateway.services.okapi_session import OkapiSession
from openurl_gateway.services.service_registry import ServiceRegistry
from openurl_gateway.services.template_renderer import TemplateRenderer


@dataclass
class RequestContext:
    """
    Per-request pipeline state.

    Created by the classifier with the service already resolved;
    `service_symbol`, `service_config` and `service` are not reassigned
    afterwards. Discarded when the pipeline returns.
    """
    raw_query: Dict[str, str]
    context_object: ContextObject
    service_symbol: str
    service_config: ServiceConfig
    service: OkapiSession
    no_pickup_location: bool = False
    trial_count: int = 0
    reshare_request: Optional[ReshareRequest] = None

    @property
    def metadata(self) -> Dict[str, Dict[str, Any]]:
        return self.context_object.get_metadata()

    @property
    def admindata(self) -> Dict[str, Dict[str, Any]]:
        return self.context_object.get_admindata()

    @property
    def admin_id(self) -> Optional[str]:
        """The admin `svc_id` flag selecting a diagnostic or JSON output mode."""
        return self.admindata.get("svc", {}).get("id")


class OutcomeKind(str, Enum):
    RENDERED_FORM = "rendered_form"
    DIAGNOSTIC_DUMP = "diagnostic_dump"
    BUILT_REQUEST_DUMP = "built_request_dump"
    SUBMISSION_SUCCESS = "submission_success"
    SUBMISSION_FAILURE = "submission_failure"


@dataclass
class PipelineOutcome:
    """Terminal result of the pipeline; producing one ends the chain."""
    kind: OutcomeKind
    content: Any
    media_type: str = "text/html"
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class PipelineResources:
    """Process-lifetime collaborators every stage may use."""
    config: ConfigManager
    registry: ServiceRegistry
    renderer: TemplateRenderer
