"""
Agreement Intake
================
Everything that happens before the first signature: client logins,
pricing summaries and agreement submission (drafts + client links).
"""

import re
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping

from core.errors import ValidationError
from core.logger import logger
from services.mailer import MailAttachment, MailMessage, bcc_list
from services.signing.records import Agreement, AgreementDocument, PriceLine, Role, Summary
from services.signing.template_input import build_template_input
from services.signing.field_renderer import render_fields
from services.signing.tokens import SigningClaims

# Agreement attribute -> accepted payload keys, first present wins
INTAKE_FIELDS = {
    "business_name": ("CompanyName", "businessName"),
    "trading_name": ("TradingName", "tradingName"),
    "client_full_name": ("ClientFullName", "clientFullName"),
    "date_of_birth": ("DateOfBirth", "dateOfBirth"),
    "email": ("ClientEmail", "email"),
    "phone": ("MobileNumber", "phone"),
    "registered_office": ("RegisteredOffice", "registeredOffice"),
    "registered_post_code": ("RegisteredPostCode", "registeredPostCode"),
    "postal_address": ("PostalAddress", "postalAddress"),
    "postal_post_code": ("PostalPostCode", "postalPostCode"),
    "business_address": ("BusinessAddress", "businessAddress"),
    "business_post_code": ("BusinessPostCode", "businessPostCode"),
    "department_contact": ("DepartmentContact", "departmentContact"),
    "contact_number": ("ContactNumber", "contactNumber"),
    "department_email": ("DepartmentEmail", "departmentEmail"),
    "office_number": ("OfficeNumber", "officeNumber"),
    "name_of_director": ("NameOfDirector", "nameOfDirector"),
    "address_of_director": ("AddressOfDirector", "addressOfDirector"),
    "drivers_license": ("DriversLicense", "driversLicense"),
    "main_service": ("MainService", "mainService"),
    "contract_start_date": ("ContractStartDate", "contractStartDate"),
    "job_type": ("JobType", "jobType"),
    "business_type": ("businessType",),
    "address": ("address",),
    "city": ("city",),
    "state": ("state",),
    "postal_code": ("postalCode",),
    "website": ("website",),
    "additional_notes": ("additionalNotes",),
}

REQUIRED_FIELDS = ("business_name", "client_full_name", "email", "phone")


def _pick(payload: Mapping[str, Any], keys) -> str:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return str(value)
    return ""


def company_numbers(payload: Mapping[str, Any]) -> Dict[str, str]:
    """
    ACN / ABN / combined display value.

    A combined ``ACN_ABN`` of 9 digits is an ACN, of 11 digits an ABN;
    otherwise the separate ``ACN`` and ``ABN`` keys are used.
    """
    acn = str(payload.get("ACN") or "")
    abn = str(payload.get("ABN") or "")
    combined = payload.get("ACN_ABN")
    digits = re.sub(r"\D", "", str(combined or ""))

    if combined is None:
        display = acn + (f" / {abn}" if abn else "")
    else:
        display = str(combined)
    return {
        "acn": digits if len(digits) == 9 else acn,
        "abn": digits if len(digits) == 11 else abn,
        "acn_abn": display,
    }


class IntakeService:
    """Pre-signing operations over a SigningContext."""

    def __init__(self, context):
        self.ctx = context

    def record_client_login(self, business_name: str, email: str, phone: str) -> Dict[str, Any]:
        client = self.ctx.clients.save(business_name, email, phone)
        logger.info(f"NEW_CLIENT_SAVED email={email}")
        self.ctx.mailer.safe_send(MailMessage(
            to=self.ctx.settings.inbox,
            subject="New Client Logged In",
            text=f"Business: {business_name}\nEmail: {email}\nPhone: {phone}",
        ))
        return client

    def save_pricing_summary(self, payload: Mapping[str, Any]) -> Summary:
        plan = payload.get("plan")
        price = plan.get("price") if isinstance(plan, Mapping) else None
        if (
            not isinstance(plan, Mapping)
            or not plan.get("name")
            or isinstance(price, bool)
            or not isinstance(price, (int, float))
        ):
            raise ValidationError("Invalid or missing plan data.")

        add_ons: List[PriceLine] = []
        for item in payload.get("addOns") or []:
            if isinstance(item, Mapping):
                add_ons.append(PriceLine(name=str(item.get("name") or ""), price=item.get("price")))

        total = payload.get("total")
        summary = Summary(
            business_name=payload.get("businessName") or "",
            email=payload.get("email") or "",
            phone=payload.get("phone") or "",
            service=payload.get("service") or "",
            plan=PriceLine(name=plan["name"], price=price),
            add_ons=add_ons,
            total=total if isinstance(total, (int, float)) and not isinstance(total, bool) else None,
        )
        self.ctx.summaries.save(summary)
        logger.info(f"SAVE_PRICING_OK email={summary.email}")
        return summary

    def build_agreement(self, payload: Mapping[str, Any]) -> Agreement:
        values = {attr: _pick(payload, keys) for attr, keys in INTAKE_FIELDS.items()}
        missing = [attr for attr in REQUIRED_FIELDS if not values[attr].strip()]
        if missing:
            raise ValidationError(
                "Missing required fields (businessName, clientFullName, email, phone).",
                missing=missing,
            )
        values.update(company_numbers(payload))
        return Agreement(submitted_at=self.ctx.clock(), **values)

    def submit_agreement(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create the agreement, render one draft per template and mail the
        client a link per document.

        Returns:
            {"message", "agreementId", "signLinks"}
        """
        agreement = self.build_agreement(payload)
        summary = self.ctx.summaries.latest_for_email(agreement.email)
        base_url = self.ctx.settings.public_web_url

        sign_links: List[str] = []
        for template in self.ctx.registry:
            template_path = self.ctx.registry.template_path(template)
            values = build_template_input(
                template.name, agreement, summary, now=self.ctx.clock(), tz=self.ctx.settings.timezone
            )
            out_draft = Path(self.ctx.settings.pdf_dir) / f"draft-{template.name}-{agreement.id}-{int(time.time() * 1000)}.pdf"
            render_fields(template_path, template.fields, values, out_draft)

            token = self.ctx.tokens.sign(SigningClaims(
                agreement_id=agreement.id,
                document_name=template.name,
                role=Role.CLIENT,
            ))
            agreement.documents.append(AgreementDocument(
                name=template.name,
                draft_pdf_path=str(out_draft),
                client_sign_token=token,
            ))
            sign_links.append(f"• {template.name}: {base_url}/sign/{token}")

        agreement.client_sign_token = agreement.documents[0].client_sign_token if agreement.documents else None
        self.ctx.agreements.create(agreement)
        logger.info(f"SUBMIT_AGREEMENT_DOCS_READY id={agreement.id} docs={[d.name for d in agreement.documents]}")

        self.ctx.mailer.safe_send(MailMessage(
            to=agreement.email,
            bcc=bcc_list(self.ctx.settings.agreements_inbox),
            subject="Your Prefilled Agreement Pack",
            text=(
                f"Hi {agreement.business_name},\n\n"
                "Your agreement pack is ready. Please sign each document using the links below:\n\n"
                + "\n".join(sign_links)
                + "\n\nKind regards"
            ),
            attachments=[
                MailAttachment(filename=f"{d.name}-Draft.pdf", path=d.draft_pdf_path)
                for d in agreement.documents
            ],
        ))
        return {
            "message": "Agreement saved, drafts generated.",
            "agreementId": agreement.id,
            "signLinks": sign_links,
        }
