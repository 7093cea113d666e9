"""Typed portfolio sections.

Each section kind has its own dataclass. Anything that is not a known
kind is kept as a ``CustomSection`` with a flat string property bag.
"""
import re
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Dict, Optional

BULLET_PREFIX = re.compile(r"^[•\-\*\s]+")


class SectionError(ValueError):
    pass


class SectionKind(str, Enum):
    EDUCATION = "education"
    EXPERIENCE = "experience"
    PUBLICATION = "publication"
    CONTACT = "contact"
    CUSTOM = "custom"


@dataclass
class EducationSection:
    institution: str = ""
    degree: str = ""
    field: str = ""
    start_date: str = ""
    end_date: str = ""
    grade: str = ""
    description: str = ""

    kind = SectionKind.EDUCATION


@dataclass
class ExperienceSection:
    company: str = ""
    position: str = ""
    location: str = ""
    start_date: str = ""
    end_date: str = ""
    is_current: bool = False
    description: str = ""

    kind = SectionKind.EXPERIENCE

    @property
    def achievements(self):
        """One entry per line of the description, bullet markers removed."""
        lines = [
            BULLET_PREFIX.sub("", line).strip()
            for line in re.split(r"[\n•]", self.description or "")
        ]
        achievements = [line for line in lines if line]
        if not achievements and self.description:
            return [self.description.strip()]
        return achievements


@dataclass
class PublicationSection:
    title: str = ""
    authors: str = ""
    journal: str = ""
    conference: str = ""
    year: str = ""
    doi: str = ""
    url: str = ""
    abstract: str = ""

    kind = SectionKind.PUBLICATION

    @property
    def organization(self):
        return self.journal or self.conference or self.authors


@dataclass
class ContactSection:
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    country: str = ""
    map_url: str = ""

    kind = SectionKind.CONTACT

    @property
    def full_address(self):
        parts = (self.address, self.city, self.country)
        return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass
class CustomSection:
    properties: Dict[str, str] = field(default_factory=dict)
    label: Optional[str] = None

    kind = SectionKind.CUSTOM


SECTION_TYPES = {
    SectionKind.EDUCATION: EducationSection,
    SectionKind.EXPERIENCE: ExperienceSection,
    SectionKind.PUBLICATION: PublicationSection,
    SectionKind.CONTACT: ContactSection,
}

DERIVED_FIELDS = {
    SectionKind.EXPERIENCE: ("achievements",),
    SectionKind.PUBLICATION: ("organization",),
    SectionKind.CONTACT: ("full_address",),
}


def _coerce(value, default):
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return "" if value is None else str(value)


def parse_section(kind, data):
    """Builds the typed section for ``kind`` from a raw mapping.

    Unknown keys are dropped for the typed kinds. Unknown kinds become a
    ``CustomSection`` holding every value as a string. Raises
    ``SectionError`` when ``data`` is not a mapping.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SectionError(f"Section data must be an object, got {type(data).__name__}")
    try:
        section_kind = SectionKind(str(kind).strip().lower())
    except ValueError:
        section_kind = SectionKind.CUSTOM

    section_type = SECTION_TYPES.get(section_kind)
    if section_type is None:
        properties = data.get("properties")
        if not isinstance(properties, dict):
            properties = {k: v for k, v in data.items() if k != "label"}
        label = data.get("label")
        if label is None and str(kind).strip().lower() != SectionKind.CUSTOM.value:
            label = str(kind)
        return CustomSection(
            properties={
                str(key): "" if value is None else str(value)
                for key, value in properties.items()
            },
            label=label,
        )

    values = {}
    for f in fields(section_type):
        if f.name in data:
            values[f.name] = _coerce(data[f.name], f.default)
    return section_type(**values)


def section_payload(section):
    """Stored form of a section: its own fields only."""
    return asdict(section)


def section_to_dict(section):
    data = asdict(section)
    for name in DERIVED_FIELDS.get(section.kind, ()):
        data[name] = getattr(section, name)
    data["kind"] = section.kind.value
    return data
