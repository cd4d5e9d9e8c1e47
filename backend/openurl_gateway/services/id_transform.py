# openurl_gateway/services/id_transform.py
import re

from openurl_gateway.services.config_manager import ServiceConfig


def id_transform(raw_id: str, service_config: ServiceConfig) -> str:
    """
    Canonicalize a requester id asserted by a trusted header.

    Strips whitespace, then applies the service's optional regex
    substitution and case fold, in that order.
    """
    value = raw_id.strip()
    rule = service_config.id_transform
    if rule is None:
        return value

    if rule.regex:
        value = re.sub(rule.regex, rule.replacement, value)
    if rule.case == "lower":
        value = value.lower()
    elif rule.case == "upper":
        value = value.upper()

    return value
