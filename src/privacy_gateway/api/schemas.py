"""Pydantic models for API request and response schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TenantInitRequest(BaseModel):
    """Request body for initialising a tenant."""

    model_config = ConfigDict(populate_by_name=True)

    org_name: str = Field("", alias="orgName", description="Display name of the organisation")
    contact_email: str = Field(
        "", alias="contactEmail", description="Contact address stored in meta.json"
    )
    default_profile_href: Optional[str] = Field(
        None,
        alias="defaultProfileHref",
        description="OSCAL profile imported by the first SSP and stored as the default profile",
    )

    @field_validator("org_name", "contact_email", mode="before")
    @classmethod
    def coerce_missing(cls, value: Any) -> str:
        """Treat null as an empty string."""

        return "" if value is None else value


class DraftSaveRequest(BaseModel):
    """Request body for saving an editor draft onto a branch."""

    model_config = ConfigDict(populate_by_name=True)

    meta: Optional[Dict[str, Any]] = Field(None, description="Tenant metadata")
    ssp: Optional[Dict[str, Any]] = Field(None, description="OSCAL SSP document")
    proc_id: Optional[str] = Field(
        None, alias="procId", description="Procedure the SSP belongs to (default proc-1)"
    )
    ropa: Optional[Dict[str, Any]] = Field(None, description="RoPA register")


class IdListResponse(BaseModel):
    """Identifiers found below a tenant directory."""

    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(..., serialization_alias="orgId")
    items: List[str]


class HealthResponse(BaseModel):
    """Response for the health endpoints."""

    ok: bool = True
    status: str = "healthy"
    mode: str


class XdomeaSourceRequest(BaseModel):
    """An xDomea filing plan given inline (XML or JSON) or by URL."""

    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(None, description="Location of an xDomea XML/JSON document")
    xml: Optional[str] = Field(None, description="Inline xDomea XML")
    json_source: Optional[Any] = Field(
        None, alias="json", description="Inline xDomea JSON (object or string)"
    )


class RopaImportRequest(XdomeaSourceRequest):
    """Request body for importing processing activities into a tenant."""

    template: Optional[str] = Field(
        None, description="'minimal' (records only) or 'process' (records plus SSPs)"
    )


class RopaProcessItem(BaseModel):
    id: str
    title: str


class XdomeaIngestResponse(BaseModel):
    """Processing activities parsed from an xDomea source."""

    ok: bool = True
    items: List[RopaProcessItem]


class BundleCreateRequest(BaseModel):
    """Request body for creating an SSP bundle."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field("", description="Title of the processing activity")
    profile_href: Optional[str] = Field(
        None, alias="profileHref", description="OSCAL profile the SSP imports"
    )
    process_id: Optional[str] = Field(
        None, alias="processId", description="Process slug (default: slug of the title)"
    )
    template: Optional[str] = Field(None, description="'minimal' or 'process'")
