"""
ReshareRequest Model - the outbound resource-sharing request document.

This module defines the patron request shape accepted by the downstream
resource-sharing module (mod-rs) and the mechanical mapping from an
OpenURL context object onto it.

Responsibilities:
- Define the document fields (camelCase, as the downstream API expects)
- Map referent/service/requester fields onto them
- NO service-specific overrides (the request builder stage applies those)
- NO network access
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from openurl_gateway.services.context_object import ContextObject


# OpenURL genres requesting a copy of part of a work rather than a loan
COPY_GENRES = {"article", "chapter", "preprint", "proceeding", "conference"}


class ReshareRequest(BaseModel):
    """
    Patron request submitted to the downstream service.

    Built fresh for every request and never persisted here.
    """
    requestingInstitutionSymbol: Optional[str] = None
    patronIdentifier: Optional[str] = None
    isRequester: bool = True
    serviceType: str = "Loan"
    publicationType: Optional[str] = None
    deliveryMethod: Optional[str] = None

    title: Optional[str] = None
    author: Optional[str] = None
    titleOfComponent: Optional[str] = None
    authorOfComponent: Optional[str] = None
    publisher: Optional[str] = None
    placeOfPublication: Optional[str] = None
    publicationDate: Optional[str] = None
    edition: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pagination: Optional[str] = None
    isbn: Optional[str] = None
    issn: Optional[str] = None
    oclcNumber: Optional[str] = None
    systemInstanceIdentifier: Optional[str] = None

    pickupLocationSlug: Optional[str] = None
    patronNote: Optional[str] = None
    neededBy: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_context_object(cls, co: ContextObject) -> "ReshareRequest":
        """Map an OpenURL context object onto a request document."""
        metadata = co.get_metadata()
        admindata = co.get_admindata()
        rft = metadata.get("rft", {})
        svc = metadata.get("svc", {})

        genre = rft.get("genre")
        is_copy = genre in COPY_GENRES

        author = rft.get("au") or rft.get("creator")
        if not author and rft.get("aulast"):
            author = ", ".join(x for x in (rft.get("aulast"), rft.get("aufirst")) if x)

        title = rft.get("title") or rft.get("btitle") or rft.get("jtitle")
        if not title and not is_copy:
            title = rft.get("atitle")

        pages = rft.get("pages")
        if not pages and rft.get("spage"):
            pages = "-".join(x for x in (rft.get("spage"), rft.get("epage")) if x)

        return cls(
            patronIdentifier=admindata.get("req", {}).get("id"),
            serviceType="Copy" if is_copy else "Loan",
            publicationType=genre,
            deliveryMethod=svc.get("deliveryMethod"),
            title=title,
            author=author,
            titleOfComponent=rft.get("atitle") if is_copy else None,
            authorOfComponent=author if is_copy else None,
            publisher=rft.get("pub"),
            placeOfPublication=rft.get("place"),
            publicationDate=rft.get("date"),
            edition=rft.get("edition"),
            volume=rft.get("volume"),
            issue=rft.get("issue"),
            pagination=pages,
            isbn=rft.get("isbn"),
            issn=rft.get("issn") or rft.get("eissn"),
            oclcNumber=rft.get("oclc"),
            systemInstanceIdentifier=admindata.get("rft", {}).get("id"),
            pickupLocationSlug=svc.get("pickupLocation"),
            patronNote=svc.get("note"),
            neededBy=svc.get("neededBy"),
        )

    def to_document(self) -> Dict[str, Any]:
        """JSON-serializable document with unset fields omitted."""
        return self.model_dump(exclude_none=True)
