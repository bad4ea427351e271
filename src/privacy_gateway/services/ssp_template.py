"""OSCAL System Security Plan templates for new procedures."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Iterable

import httpx

from src.privacy_gateway.services.branch_provisioner import Clock, utc_now

logger = logging.getLogger(__name__)

SSP_ROOT_KEY = "system-security-plan"
OSCAL_VERSION = "1.1.2"

ROPA_PROPS = [
    {"name": "ropa:purpose", "value": "<purpose(s)>"},
    {"name": "ropa:data-categories", "value": "<categories of personal data>"},
    {"name": "ropa:data-subjects", "value": "<data subject categories>"},
    {"name": "ropa:recipients", "value": "<recipients/categories>"},
    {"name": "ropa:third-country-transfers", "value": "<No/Yes – legal basis>"},
    {"name": "ropa:retention", "value": "<retention/erasure periods>"},
    {"name": "ropa:legal-basis", "value": "<Art. 6 GDPR / sector law>"},
]


def _system_characteristics() -> dict[str, Any]:
    return {
        "system-ids": [
            {
                "identifier-type": "https://ietf.org/rfc/rfc4122",
                "id": f"urn:uuid:{uuid.uuid4()}",
            }
        ],
        "system-name": "Processing activity – <Title>",
        "system-name-short": "PA-<Short>",
        "description": (
            "Short description of the processing, purpose, legal basis, "
            "data subjects/data categories."
        ),
        "status": {"state": "operational"},
        "security-sensitivity-level": "moderate",
        "system-information": {
            "information-types": [
                {
                    "title": "Personal data (GDPR)",
                    "description": "Typical RoPA categories.",
                }
            ]
        },
        "props": copy.deepcopy(ROPA_PROPS),
        "authorization-boundary": {
            "description": "Scope and boundary of the processing environment."
        },
    }


def build_ssp_template(
    profile_href: str | None = None,
    template: dict[str, Any] | None = None,
    *,
    title: str = "SSP (RoPA) – Template",
    clock: Clock = utc_now,
) -> dict[str, Any]:
    """Complete ``template`` (or an empty SSP) with every required section.

    Values already present in the template are kept; only missing sections
    are filled in.
    """
    root = copy.deepcopy(template) if template else {SSP_ROOT_KEY: {}}
    ssp = root[SSP_ROOT_KEY]

    if profile_href and "import-profile" not in ssp:
        ssp["import-profile"] = {"href": profile_href}
    ssp.setdefault("uuid", str(uuid.uuid4()))

    metadata = ssp.setdefault("metadata", {})
    metadata.setdefault("title", title)
    metadata.setdefault("last-modified", clock().isoformat())
    metadata.setdefault("version", "0.1.0")
    metadata.setdefault("oscal-version", OSCAL_VERSION)

    if "system-characteristics" not in ssp:
        ssp["system-characteristics"] = _system_characteristics()
    ssp.setdefault("system-implementation", {"users": [], "components": []})
    ssp.setdefault(
        "control-implementation",
        {
            "description": "Implementation per profile/catalog.",
            "implemented-requirements": [],
        },
    )
    ssp.setdefault("back-matter", {"resources": []})
    return root


async def load_ssp_template(
    client: httpx.AsyncClient,
    candidates: Iterable[str],
    profile_href: str | None = None,
    *,
    clock: Clock = utc_now,
) -> dict[str, Any]:
    """Fetch the first usable template from ``candidates`` and complete it.

    Unreachable or malformed candidates are skipped; when none works the
    built-in template is returned.
    """
    for href in candidates:
        try:
            response = await client.get(href)
            response.raise_for_status()
            template = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("SSP template %s unavailable: %s", href, exc)
            continue

        if isinstance(template, dict) and isinstance(template.get(SSP_ROOT_KEY), dict):
            return build_ssp_template(profile_href, template, clock=clock)
        logger.warning("SSP template %s has no '%s' root", href, SSP_ROOT_KEY)

    return build_ssp_template(profile_href, clock=clock)
