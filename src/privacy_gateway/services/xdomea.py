"""Extract RoPA processing activities from xDomea filing plans.

An xDomea ``Aktenplan`` (filing plan) lists the organisation's record groups;
each ``Bezeichnung`` (label) becomes one processing activity with a slug id.
Sources arrive as XML, as the JSON rendering of that XML, or by URL.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable
from xml.etree.ElementTree import Element, ParseError

import httpx
from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring

from src.privacy_gateway.results import Err, ErrorKind

logger = logging.getLogger(__name__)

FILING_PLAN_TAG = "Aktenplan"
LABEL_TAG = "Bezeichnung"
_JSON_FILING_PLAN_TAG = "xdomea:Aktenplan"
_JSON_LABEL_TAG = "xdomea:Bezeichnung"

ACCEPT_HEADER = "application/json,application/xml;q=0.9,*/*;q=0.8"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


class XdomeaError(ValueError):
    """Raised when an xDomea source is missing, unreachable or malformed."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code


@dataclass(slots=True, frozen=True)
class RopaProcess:
    """One processing activity derived from a filing plan label."""

    id: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title}


def slugify(text: str) -> str:
    """``"Personal-Akten 2024"`` -> ``"personal-akten-2024"``."""
    return _NON_SLUG.sub("-", text.lower()).strip("-")


def _local_name(element: Element) -> str:
    tag = element.tag if isinstance(element.tag, str) else ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _to_processes(labels: Iterable[str]) -> list[RopaProcess]:
    processes: list[RopaProcess] = []
    seen: set[str] = set()
    for label in labels:
        title = label.strip()
        process_id = slugify(title)
        if not process_id or process_id in seen:
            continue
        seen.add(process_id)
        processes.append(RopaProcess(id=process_id, title=title))
    return processes


def parse_xdomea_xml(text: str) -> list[RopaProcess]:
    """Collect the labels of every filing plan entry in an xDomea XML document.

    Namespaces and prefixes are ignored. Labels directly below an
    ``Aktenplan`` element win; a document without filing plan elements
    falls back to every ``Bezeichnung`` it contains.
    """
    try:
        root = fromstring(text)
    except (ParseError, DefusedXmlException) as exc:
        raise XdomeaError("invalid_xml", f"xDomea XML could not be parsed: {exc}") from exc

    plans = [el for el in root.iter() if _local_name(el) == FILING_PLAN_TAG]
    if plans:
        labels = [
            child
            for plan in plans
            for child in plan
            if _local_name(child) == LABEL_TAG
        ]
    else:
        labels = [el for el in root.iter() if _local_name(el) == LABEL_TAG]
    return _to_processes(el.text or "" for el in labels)


def parse_xdomea_json(document: Any) -> list[RopaProcess]:
    """Read labels from the JSON rendering of an xDomea document.

    The shape is ``{"root": {"children": [{"tag": "xdomea:Aktenplan",
    "value": {"children": [{"tag": "xdomea:Bezeichnung", "value":
    {"#text": "..."}}]}}]}}``.
    """
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as exc:
            raise XdomeaError("invalid_json", f"xDomea JSON could not be parsed: {exc}") from exc
    if not isinstance(document, dict):
        raise XdomeaError("invalid_json", "xDomea JSON must be an object.")

    root = document.get("root") or {}
    nodes = root.get("children") if isinstance(root, dict) else None
    labels: list[str] = []
    for node in nodes or []:
        if not isinstance(node, dict) or node.get("tag") != _JSON_FILING_PLAN_TAG:
            continue
        value = node.get("value") or {}
        for child in value.get("children") or []:
            if isinstance(child, dict) and child.get("tag") == _JSON_LABEL_TAG:
                text = (child.get("value") or {}).get("#text")
                if isinstance(text, str):
                    labels.append(text)
                break
    return _to_processes(labels)


def parse_xdomea(text: str, content_type: str = "application/xml") -> list[RopaProcess]:
    """Dispatch on ``content_type`` (or a leading ``{``) between JSON and XML."""
    if "json" in content_type.lower() or text.lstrip().startswith("{"):
        return parse_xdomea_json(text)
    return parse_xdomea_xml(text)


async def fetch_xdomea(client: httpx.AsyncClient, url: str) -> tuple[str, str]:
    """Download ``url`` and return its body text and content type."""
    try:
        response = await client.get(url, headers={"Accept": ACCEPT_HEADER})
    except httpx.HTTPError as exc:
        logger.warning("xDomea source %s unreachable: %s", url, exc)
        raise XdomeaError("fetch_failed", f"Could not fetch {url}: {exc}") from exc
    if not response.is_success:
        logger.warning("xDomea source %s answered %s", url, response.status_code)
        raise XdomeaError(f"fetch_failed:{response.status_code}")
    content_type = response.headers.get("content-type", "application/octet-stream")
    return response.text, content_type


async def ingest_xdomea(
    client: httpx.AsyncClient,
    *,
    url: str | None = None,
    xml: str | None = None,
    json_source: Any = None,
) -> list[RopaProcess]:
    """Resolve the first given source (xml, json, url) and parse it."""
    if xml:
        text, content_type = str(xml), "application/xml"
    elif json_source:
        if isinstance(json_source, str):
            text = json_source
        else:
            text = json.dumps(json_source)
        content_type = "application/json"
    elif url:
        text, content_type = await fetch_xdomea(client, url)
    else:
        raise XdomeaError("missing_source", "Provide one of url, xml or json.")

    if not text.strip():
        raise XdomeaError("empty_source", "The xDomea source is empty.")
    return parse_xdomea(text, content_type)


def as_error(exc: XdomeaError) -> Err:
    """Unreachable sources are remote failures; everything else is bad input."""
    if exc.code.startswith("fetch_failed"):
        status = exc.code.partition(":")[2]
        return Err(
            ErrorKind.SOURCE_FETCH_FAILED,
            exc.detail,
            status_code=int(status) if status else None,
        )
    return Err(ErrorKind.VALIDATION_FAILED, exc.detail)
