"""
Signing Records
===============
Explicit, typed records for everything the signing core persists.

An Agreement owns an ordered list of AgreementDocuments; each document owns
one DirectorSlot per configured director. Records are serialized whole into
the document store, which calls ``validate_transition`` before every write.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from core.errors import Conflict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Who a capability token speaks for."""
    CLIENT = "client"
    DIRECTOR = "director"


class DocumentStage(str, Enum):
    """Artifact lineage of a single document."""
    DRAFT = "draft"
    CLIENT_SIGNED = "client-signed"
    FINAL_SIGNED = "final-signed"


class AgreementStage(str, Enum):
    """Aggregate progress across all documents of an agreement."""
    COLLECTING_CLIENT = "collecting-client-signatures"
    COLLECTING_DIRECTORS = "collecting-director-signatures"
    COMPLETE = "complete"


class DirectorSlot(BaseModel):
    """Per-director signing record on one document."""
    email: str = ""
    sign_token: Optional[str] = None
    signed: bool = False
    signed_date: Optional[datetime] = None
    signature_image_path: Optional[str] = None
    signature: Optional[str] = None


class AgreementDocument(BaseModel):
    """One PDF lineage (draft -> client-signed -> final-signed)."""
    name: str

    # Artifacts
    draft_pdf_path: Optional[str] = None
    client_signed_pdf_path: Optional[str] = None
    final_signed_pdf_path: Optional[str] = None

    # Client signature
    client_sign_token: Optional[str] = None
    client_signed: bool = False
    client_signed_date: Optional[datetime] = None
    client_signature: Optional[str] = None
    client_signature_image_path: Optional[str] = None

    directors: List[DirectorSlot] = Field(default_factory=list)

    @property
    def all_directors_signed(self) -> bool:
        return bool(self.directors) and all(slot.signed for slot in self.directors)

    @property
    def stage(self) -> DocumentStage:
        if self.client_signed and self.all_directors_signed:
            return DocumentStage.FINAL_SIGNED
        if self.client_signed:
            return DocumentStage.CLIENT_SIGNED
        return DocumentStage.DRAFT

    def director(self, index: int) -> Optional[DirectorSlot]:
        if 0 <= index < len(self.directors):
            return self.directors[index]
        return None


class Agreement(BaseModel):
    """One signing engagement for one client."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    version: int = 0

    # Business identity
    business_name: str = ""
    trading_name: str = ""
    client_full_name: str = ""
    date_of_birth: str = ""
    business_type: str = ""
    acn: str = ""
    abn: str = ""
    acn_abn: str = ""

    # Addresses
    registered_office: str = ""
    registered_post_code: str = ""
    postal_address: str = ""
    postal_post_code: str = ""
    business_address: str = ""
    business_post_code: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""

    # Contact
    email: str = ""
    phone: str = ""
    department_contact: str = ""
    contact_number: str = ""
    department_email: str = ""
    office_number: str = ""
    website: str = ""

    # Director details
    name_of_director: str = ""
    address_of_director: str = ""
    drivers_license: str = ""

    # Engagement
    main_service: str = ""
    contract_start_date: str = ""
    job_type: str = ""
    additional_notes: str = ""

    submitted_at: datetime = Field(default_factory=utcnow)

    documents: List[AgreementDocument] = Field(default_factory=list)

    # Aggregates
    client_sign_token: Optional[str] = None
    client_signed: bool = False
    client_signed_date: Optional[datetime] = None
    director_signed: bool = False
    director_signed_date: Optional[datetime] = None

    def document(self, name: Optional[str]) -> Optional[AgreementDocument]:
        for doc in self.documents:
            if doc.name == name:
                return doc
        return None

    @property
    def all_clients_signed(self) -> bool:
        return bool(self.documents) and all(doc.client_signed for doc in self.documents)

    @property
    def all_directors_signed(self) -> bool:
        return bool(self.documents) and all(
            doc.client_signed and doc.all_directors_signed for doc in self.documents
        )

    @property
    def stage(self) -> AgreementStage:
        if self.director_signed:
            return AgreementStage.COMPLETE
        if self.client_signed:
            return AgreementStage.COLLECTING_DIRECTORS
        return AgreementStage.COLLECTING_CLIENT


class PriceLine(BaseModel):
    name: str = ""
    price: Optional[float] = None


class Summary(BaseModel):
    """Pricing summary captured before the agreement is submitted."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    business_name: str = ""
    email: str = ""
    phone: str = ""
    service: str = ""
    plan: Optional[PriceLine] = None
    add_ons: List[PriceLine] = Field(default_factory=list)
    total: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)


def validate_transition(previous: Optional[Agreement], updated: Agreement) -> None:
    """
    Reject a write that breaks the signing invariants.

    Checked against the currently stored copy: signatures are applied once
    and never rewritten, directors never sign ahead of the client, and the
    aggregate flags never claim more than the documents show.
    """
    for doc in updated.documents:
        if not doc.client_signed and any(slot.signed for slot in doc.directors):
            raise Conflict(f"Client must sign first ({doc.name})")

    if updated.client_signed and not updated.all_clients_signed:
        raise Conflict("Agreement marked client-signed with unsigned documents")
    if updated.director_signed and not updated.all_directors_signed:
        raise Conflict("Agreement marked director-signed with unsigned slots")

    if previous is None:
        return

    for before in previous.documents:
        after = updated.document(before.name)
        if after is None:
            raise Conflict(f"Document {before.name} cannot be removed")

        if before.client_signed and (
            not after.client_signed
            or after.client_signature != before.client_signature
            or after.client_signed_pdf_path != before.client_signed_pdf_path
        ):
            raise Conflict(f"Client signature on {before.name} is immutable")

        for index, slot in enumerate(before.directors):
            if not slot.signed:
                continue
            now = after.director(index)
            if (
                now is None
                or not now.signed
                or now.signature != slot.signature
                or now.signed_date != slot.signed_date
            ):
                raise Conflict(f"Director {index + 1} signature on {before.name} is immutable")
