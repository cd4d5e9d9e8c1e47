"""
ContextObject - OpenURL query parsing.

Turns raw query parameters into a structured OpenURL context object:
- Normalizes 1.0 keys (`rft_title`, `rft.title`) to dot form
- Maps 0.1 bare keys (`title`, `aulast`, `sid`) into their 1.0 namespaces
- Splits namespaced keys into metadata and administrative data

This module does NOT:
- Decide which service handles the request
- Render anything
- Talk to the network
"""

import copy
import logging
import re
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)


# =============================================================================
# OPENURL VOCABULARY
# =============================================================================

OPENURL_1_0 = "Z39.88-2004"

NAMESPACES = ("rft", "rfe", "req", "res", "rfr", "svc", "ctx", "url")

# Fields that describe an entity rather than carry its metadata
ADMIN_FIELDS = {"id", "val_fmt", "ref_fmt", "ref", "dat"}

# Namespaces whose every field is administrative
ADMIN_NAMESPACES = {"ctx", "url"}

# OpenURL 0.1 bare key -> 1.0 key
V01_KEY_MAP: dict[str, str] = {
    "sid": "rfr.id",
    "id": "rft.id",
    "pid": "rft.dat",
    "genre": "rft.genre",
    "aulast": "rft.aulast",
    "aufirst": "rft.aufirst",
    "auinit": "rft.auinit",
    "au": "rft.au",
    "title": "rft.title",
    "atitle": "rft.atitle",
    "jtitle": "rft.jtitle",
    "btitle": "rft.btitle",
    "stitle": "rft.stitle",
    "date": "rft.date",
    "volume": "rft.volume",
    "issue": "rft.issue",
    "part": "rft.part",
    "spage": "rft.spage",
    "epage": "rft.epage",
    "pages": "rft.pages",
    "artnum": "rft.artnum",
    "issn": "rft.issn",
    "eissn": "rft.eissn",
    "isbn": "rft.isbn",
    "coden": "rft.coden",
    "sici": "rft.sici",
    "bici": "rft.bici",
}

TITLE_FIELDS = ("title", "btitle", "atitle", "jtitle")

_NAMESPACED_KEY = re.compile(r"^(%s)[._](.+)$" % "|".join(NAMESPACES))


def _normalize_key(key: str) -> str:
    match = _NAMESPACED_KEY.match(key)
    if match:
        return f"{match.group(1)}.{match.group(2)}"
    return key


def _is_admin(namespace: str, field: str) -> bool:
    return namespace in ADMIN_NAMESPACES or field in ADMIN_FIELDS


# =============================================================================
# CONTEXT OBJECT
# =============================================================================

class ContextObject:
    """
    Structured view of an OpenURL request.

    Usage:
        co = ContextObject({"rft.title": "Dune", "svc_pickupLocation": "MAIN"})
        co.get_metadata()   # {"rft": {"title": "Dune"}, "svc": {"pickupLocation": "MAIN"}}
        co.has_basic_data() # True
    """

    def __init__(self, query: Mapping[str, str]):
        self._raw = dict(query)
        self._type = self._detect_type()
        self._query = self._translate()
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._admindata: Dict[str, Dict[str, Any]] = {}
        self._split()

    def _detect_type(self) -> str:
        if self._raw.get("url_ver") == OPENURL_1_0 or self._raw.get("url.ver") == OPENURL_1_0:
            return "1.0"
        if any(_NAMESPACED_KEY.match(key) for key in self._raw):
            return "1.0"
        return "0.1"

    def _translate(self) -> Dict[str, str]:
        query: Dict[str, str] = {}
        for key, value in self._raw.items():
            if self._type == "0.1" and key in V01_KEY_MAP:
                query[V01_KEY_MAP[key]] = value
            else:
                query[_normalize_key(key)] = value
        return query

    def _split(self) -> None:
        for key, value in self._query.items():
            if "." not in key:
                continue
            namespace, field = key.split(".", 1)
            if namespace not in NAMESPACES:
                continue
            target = self._admindata if _is_admin(namespace, field) else self._metadata
            target.setdefault(namespace, {})[field] = value

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_type(self) -> str:
        """OpenURL version the query was written in: '1.0' or '0.1'."""
        return self._type

    def get_query(self) -> Dict[str, str]:
        """Translated query with dot-separated keys (a fresh copy)."""
        return dict(self._query)

    def get_metadata(self) -> Dict[str, Dict[str, Any]]:
        return self._metadata

    def get_admindata(self) -> Dict[str, Dict[str, Any]]:
        return self._admindata

    def set_admindata(self, namespace: str, key: str, value: Any) -> None:
        self._admindata.setdefault(namespace, {})[key] = value

    def has_basic_data(self) -> bool:
        """True when a title of some kind is present, enough to skip form1."""
        rft = self._metadata.get("rft", {})
        return any(rft.get(field) for field in TITLE_FIELDS)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of {admindata, metadata} for diagnostic output."""
        return {
            "admindata": copy.deepcopy(self._admindata),
            "metadata": copy.deepcopy(self._metadata),
        }
