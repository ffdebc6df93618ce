"""Metadata extraction for catalog payloads.

Each known kind family maps to an extractor turning the raw payload into an
ordered tuple of (label, key, value) entries. Kinds without an extractor get an
empty tuple. Extractors are pure: same input, same output.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Callable, NamedTuple

from .exceptions import MalformedPayload

logger = logging.getLogger(__name__)

JOB_INFORMATION_LABEL = "job_information"
VARIABLE_LABEL = "variable"
GENERIC_INFORMATION_LABEL = "generic_information"

WORKFLOW_KIND = "workflow"

# (attribute on <job>, metadata key), in emission order
JOB_INFORMATION_FIELDS = (
    ("projectName", "project_name"),
    ("name", "name"),
)


class MetadataEntry(NamedTuple):
    label: str
    key: str
    value: str


Extractor = Callable[[bytes], tuple[MetadataEntry, ...]]


def _local_name(tag: str) -> str:
    # strip "{namespace}" so any jobdescriptor schema version is accepted
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _named_entries(section: ET.Element, item_tag: str, label: str) -> list[MetadataEntry]:
    entries = []
    for item in _children(section, item_tag):
        key = item.get("name")
        if not key:
            raise MalformedPayload(f"<{item_tag}> element without a name attribute")
        entries.append(MetadataEntry(label, key, item.get("value", "")))
    return entries


def extract_workflow_metadata(payload: bytes) -> tuple[MetadataEntry, ...]:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise MalformedPayload(f"Workflow payload is not well-formed XML: {exc}") from exc

    if _local_name(root.tag) != "job":
        raise MalformedPayload(f"Workflow root element must be <job>, got <{_local_name(root.tag)}>")

    entries = []
    for attribute, key in JOB_INFORMATION_FIELDS:
        value = root.get(attribute)
        if value is not None:
            entries.append(MetadataEntry(JOB_INFORMATION_LABEL, key, value))

    for section in _children(root, "variables"):
        entries.extend(_named_entries(section, "variable", VARIABLE_LABEL))

    for section in _children(root, "genericInformation"):
        entries.extend(_named_entries(section, "info", GENERIC_INFORMATION_LABEL))

    return tuple(entries)


EXTRACTORS: dict[str, Extractor] = {
    WORKFLOW_KIND: extract_workflow_metadata,
}


def kind_family(kind: str) -> str:
    """'Workflow/pca' -> 'workflow'."""
    return kind.split("/", 1)[0].strip().lower()


def extract_metadata(kind: str, payload: bytes) -> tuple[MetadataEntry, ...]:
    extractor = EXTRACTORS.get(kind_family(kind))
    if extractor is None:
        logger.debug("No metadata extractor for kind %r", kind)
        return ()
    return extractor(payload)


def project_name(entries) -> str | None:
    for entry in entries:
        if entry.label == JOB_INFORMATION_LABEL and entry.key == "project_name":
            return entry.value
    return None
