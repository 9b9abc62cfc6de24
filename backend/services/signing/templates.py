"""
Template Registry
=================
The fixed catalog of PDF templates this deployment signs.

Each template names its source file, where every text field lands, and
where the client and director signatures go. Field maps are declared with
plain string keys and validated against ``TemplateField`` when the
registry is built, so a typo fails at boot instead of silently drawing
nothing.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.errors import ConfigurationError
from core.logger import logger
from services.signing.coordinates import ORIGINS, TOP_LEFT

SECONDARY_DIRECTOR_OFFSET = 60


class TemplateField(str, Enum):
    """Every field identifier a template may place."""
    BUSINESS_NAME = "businessName"
    TRADING_NAME = "tradingName"
    CLIENT_FULL_NAME = "clientFullName"
    DATE_OF_BIRTH = "dateOfBirth"
    EMAIL = "email"
    PHONE = "phone"
    REGISTERED_OFFICE = "registeredOffice"
    REGISTERED_POST_CODE = "registeredPostCode"
    POSTAL_ADDRESS = "postalAddress"
    POSTAL_POST_CODE = "postalPostCode"
    BUSINESS_ADDRESS = "businessAddress"
    BUSINESS_POST_CODE = "businessPostCode"
    DEPARTMENT_CONTACT = "departmentContact"
    CONTACT_NUMBER = "contactNumber"
    DEPARTMENT_EMAIL = "departmentEmail"
    OFFICE_NUMBER = "officeNumber"
    NAME_OF_DIRECTOR = "nameOfDirector"
    ADDRESS_OF_DIRECTOR = "addressOfDirector"
    DRIVERS_LICENSE = "driversLicense"
    ACN = "ACN"
    ABN = "ABN"
    ACN_ABN = "acn_abn"
    MAIN_SERVICE = "mainService"
    CONTRACT_START_DATE = "contractStartDate"
    JOB_TYPE = "JobType"
    BUSINESS_TYPE = "businessType"
    ADDRESS = "address"
    CITY = "city"
    STATE = "state"
    POSTAL_CODE = "postalCode"
    WEBSITE = "website"
    ADDITIONAL_NOTES = "additionalNotes"
    PLAN_NAME = "planName"
    PLAN_PRICE = "planPrice"
    ADD_ONS = "addOns"
    ADD_ONS_SUMMARY = "addOnsSummary"
    TOTAL = "total"
    SERVICE = "service"
    DIRECTOR_NAME = "directorName"
    SUBMITTED_AT = "submittedAt"
    DATE = "date"


@dataclass(frozen=True)
class FieldPlacement:
    """Where and how one field value is drawn."""
    page: int
    x: float
    y: float
    size: float = 10
    origin: str = TOP_LEFT
    max_width: Optional[float] = None
    line_height: float = 1.2


@dataclass(frozen=True)
class SignatureAnchor:
    """Default rectangle for a signature image."""
    page: Any
    x: float
    y: float
    width: float = 150
    height: float = 50
    origin: str = TOP_LEFT

    def as_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "origin": self.origin,
        }


@dataclass(frozen=True)
class DocumentTemplate:
    """One signable document."""
    name: str
    filename: str
    fields: Dict[TemplateField, Tuple[FieldPlacement, ...]] = field(default_factory=dict)
    client_anchor: Optional[SignatureAnchor] = None
    director_anchor: Optional[SignatureAnchor] = None
    secondary_director_anchor: Optional[SignatureAnchor] = None


# =============================================================================
# TEMPLATE CATALOG
# =============================================================================

def _at(page, x, y, size=10, **extra):
    return {"page": page, "x": x, "y": y, "size": size, "origin": TOP_LEFT, **extra}


def _sig(page, x, y):
    return {"page": page, "x": x, "y": y, "width": 150, "height": 50, "origin": TOP_LEFT}


TEMPLATE_CONFIG: List[Dict[str, Any]] = [
    {
        "name": "ServiceAgreement",
        "file": "Engagement-letter.pdf",
        "fields": {
            "businessName": _at(2, 171, 563),
            "tradingName": _at(2, 171, 540),
            "clientFullName": _at(2, 171, 484),
            "dateOfBirth": _at(2, 171, 462),
            "email": _at(2, 169, 450, maxWidth=260),
            "phone": _at(2, 405, 484),

            "registeredOffice": _at(2, 171, 395),
            "registeredPostCode": _at(2, 405, 395),
            "postalAddress": _at(2, 171, 347),
            "postalPostCode": _at(2, 405, 347),
            "businessAddress": _at(2, 171, 297),
            "businessPostCode": _at(2, 405, 297),

            "departmentContact": _at(2, 171, 259),
            "contactNumber": _at(2, 405, 259),
            "departmentEmail": _at(2, 171, 237),
            "officeNumber": _at(2, 405, 450),

            "nameOfDirector": _at(2, 171, 217),
            "addressOfDirector": _at(2, 405, 217),
            "driversLicense": _at(2, 171, 195),

            "ACN": _at(2, 405, 566),
            "ABN": _at(2, 405, 521),
            "acn_abn": _at(2, 171, 170),

            "mainService": _at(4, 319, 554, size=11),
            "contractStartDate": _at(3, 182, 428),
            "JobType": _at(3, 182, 400),

            "businessType": _at(2, 171, 150),
            "address": _at(2, 2, 130),
            "city": _at(2, 171, 110),
            "state": _at(2, 171, 90),
            "postalCode": _at(2, 405, 90),
            "website": _at(2, 171, 70),
            "additionalNotes": _at(2, 171, 50, maxWidth=260),

            # Pricing summary on the first page
            "planName": _at(1, 150, 620),
            "planPrice": _at(1, 420, 620),
            "addOns": _at(1, 150, 600, maxWidth=360),
            "total": _at(1, 420, 580, size=12),
        },
        "clientSig": _sig(4, 338, 125),
        "directorSig": _sig(4, 338, 72),
    },
    {
        "name": "CustomerInformation",
        "file": "guarantee-page.pdf",
        "fields": {
            "businessName": _at(1, 388, 616),
            "ACN": _at(1, 101, 605),
            "ABN": _at(1, 101, 563),
            "directorName": _at(1, 384, 102),
            "submittedAt": _at(1, 338, 74),
        },
        "clientSig": _sig(1, 338, 125),
        "directorSig": _sig(1, 64, 466),
        "director1Sig": _sig(1, 350, 466),
    },
    {
        "name": "PricingSchedule",
        "file": "privacy-policy.pdf",
        "fields": {
            "businessName": _at(1, 150, 660),
            "service": _at(1, 150, 640),
            "planName": _at(1, 150, 620),
            "planPrice": _at(1, 420, 620),
            "addOnsSummary": _at(1, 150, 600, maxWidth=360),
            "total": _at(1, 420, 580, size=12),
        },
        "clientSig": _sig(1, 420, 90),
        "directorSig": _sig(1, 420, 40),
    },
    {
        "name": "ConfidentialityAgreement",
        "file": "terms.pdf",
        "fields": {
            "businessName": _at(4, 120, 362),
            "date": _at(4, 430, 630),
            "ACN": _at(4, 406, 608),
            "ABN": _at(4, 406, 563),
        },
        "clientSig": _sig(4, 380, 80),
        "directorSig": _sig(4, 63, 466),
        "director1Sig": _sig(4, 350, 466),
    },
]


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    return value


def _origin(value: Any, what: str) -> str:
    origin = value or TOP_LEFT
    if origin not in ORIGINS:
        raise ConfigurationError(f"{what}: unknown origin {origin!r}")
    return origin


def _placement(raw: Mapping[str, Any], what: str) -> FieldPlacement:
    page = raw.get("page", 1)
    if not isinstance(page, int) or page < 1:
        raise ConfigurationError(f"{what}: page must be a positive integer")
    max_width = raw.get("maxWidth")
    return FieldPlacement(
        page=page,
        x=_number(raw.get("x"), f"{what}.x"),
        y=_number(raw.get("y"), f"{what}.y"),
        size=_number(raw.get("size", 10), f"{what}.size"),
        origin=_origin(raw.get("origin"), what),
        max_width=_number(max_width, f"{what}.maxWidth") if max_width is not None else None,
        line_height=_number(raw.get("lineHeight", 1.2), f"{what}.lineHeight"),
    )


def _anchor(raw: Optional[Mapping[str, Any]], what: str) -> Optional[SignatureAnchor]:
    if raw is None:
        return None
    page = raw.get("page", "last")
    if page != "last" and (not isinstance(page, int) or page < 1):
        raise ConfigurationError(f"{what}: page must be a positive integer or 'last'")
    return SignatureAnchor(
        page=page,
        x=_number(raw.get("x"), f"{what}.x"),
        y=_number(raw.get("y"), f"{what}.y"),
        width=_number(raw.get("width", 150), f"{what}.width"),
        height=_number(raw.get("height", 50), f"{what}.height"),
        origin=_origin(raw.get("origin"), what),
    )


def load_template(raw: Mapping[str, Any]) -> DocumentTemplate:
    """Build a typed template from catalog config, raising ConfigurationError on bad shape."""
    name = raw.get("name")
    if not name or not raw.get("file"):
        raise ConfigurationError("Template entry needs a name and a file")

    fields: Dict[TemplateField, Tuple[FieldPlacement, ...]] = {}
    for key, spec in (raw.get("fields") or {}).items():
        try:
            field_id = TemplateField(key)
        except ValueError:
            raise ConfigurationError(f"{name}: unknown field {key!r}")
        specs = spec if isinstance(spec, (list, tuple)) else [spec]
        fields[field_id] = tuple(
            _placement(one, f"{name}.{key}[{i}]") for i, one in enumerate(specs)
        )

    return DocumentTemplate(
        name=name,
        filename=raw["file"],
        fields=fields,
        client_anchor=_anchor(raw.get("clientSig"), f"{name}.clientSig"),
        director_anchor=_anchor(raw.get("directorSig"), f"{name}.directorSig"),
        secondary_director_anchor=_anchor(raw.get("director1Sig"), f"{name}.director1Sig"),
    )


class TemplateRegistry:
    """Lookup, file checks and anchor derivation over the catalog."""

    def __init__(self, templates_dir, config: Optional[List[Mapping[str, Any]]] = None):
        self.templates_dir = Path(templates_dir)
        self._templates: List[DocumentTemplate] = []
        for raw in (TEMPLATE_CONFIG if config is None else config):
            template = load_template(raw)
            if any(t.name == template.name for t in self._templates):
                raise ConfigurationError(f"Duplicate template name {template.name}")
            self._templates.append(template)

    def __iter__(self):
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def names(self) -> List[str]:
        """Template names in declared (signing) order."""
        return [t.name for t in self._templates]

    def get(self, name: str) -> DocumentTemplate:
        for template in self._templates:
            if template.name == name:
                return template
        raise ConfigurationError(f"Template not found for {name}")

    def template_status(self) -> List[Dict[str, Any]]:
        """Presence of every backing file under the templates directory."""
        status = []
        for template in self._templates:
            path = self.templates_dir / template.filename
            status.append({"name": template.filename, "path": str(path), "exists": path.exists()})
        return status

    def check_templates_at_boot(self) -> bool:
        missing = [s["name"] for s in self.template_status() if not s["exists"]]
        if missing:
            logger.error(f"Missing PDF templates: {missing}")
            logger.error(f"Place them under {self.templates_dir} (case-sensitive) and redeploy.")
            return False
        logger.info("All PDF templates found.")
        return True

    def template_path(self, template: DocumentTemplate) -> Path:
        path = self.templates_dir / template.filename
        if not path.exists():
            raise ConfigurationError(f"Template file missing: {template.filename}")
        return path

    @staticmethod
    def director_anchor(template: DocumentTemplate, director_index: int) -> SignatureAnchor:
        """
        Anchor for the director at ``director_index``.

        Index 1 without an explicit secondary anchor gets the primary anchor
        moved down the page by ``SECONDARY_DIRECTOR_OFFSET``.
        """
        primary = template.director_anchor
        secondary = template.secondary_director_anchor

        if director_index == 0 and primary:
            return primary
        if director_index == 1:
            if secondary:
                return secondary
            if primary:
                return SignatureAnchor(
                    page=primary.page,
                    x=primary.x,
                    y=primary.y + SECONDARY_DIRECTOR_OFFSET,
                    width=primary.width,
                    height=primary.height,
                    origin=primary.origin,
                )
        anchor = primary or secondary
        if anchor is None:
            raise ConfigurationError(f"No director signature anchor for {template.name}")
        return anchor
