"""
Template Input Mapper
=====================
Projects an Agreement (plus its latest pricing Summary) onto the flat
key/value record the field renderer draws from.

Older templates name the same value differently, so several alias keys are
filled from one source field. No side effects: the result depends only on
the arguments.
"""

from datetime import datetime
from typing import Dict, Optional

from services.signing.clock import DEFAULT_TIMEZONE, format_date, format_timestamp, local_now
from services.signing.records import Agreement, PriceLine, Summary

PRICING_TEMPLATE = "PricingSchedule"
CONFIDENTIALITY_TEMPLATE = "ConfidentialityAgreement"


def money(value: Optional[float]) -> str:
    """$1234.50, or empty when there is no number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ""
    return f"${value:.2f}"


def _plain_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def add_ons_summary(add_ons) -> str:
    """Add-ons as ``SEO ($49), Hosting ($19.5)``."""
    parts = []
    for item in add_ons or []:
        line = item if isinstance(item, PriceLine) else PriceLine.model_validate(item)
        parts.append(f"{line.name} (${_plain_number(line.price)})")
    return ", ".join(parts)


def build_template_input(
    template_name: str,
    agreement: Agreement,
    summary: Optional[Summary] = None,
    now: Optional[datetime] = None,
    tz: str = DEFAULT_TIMEZONE,
) -> Dict[str, str]:
    """
    Flatten ``agreement`` for ``template_name``.

    Args:
        template_name: Registry name; PricingSchedule and
            ConfidentialityAgreement get extra keys
        agreement: Stored agreement
        summary: Most recent pricing summary for the agreement's email
        now: Reference time for the executed date (defaults to current time)
        tz: Timezone used for every rendered date

    Returns:
        Dict of field identifier -> string, empty string when unknown
    """
    a = agreement
    submitted = format_timestamp(local_now(tz, a.submitted_at))

    base: Dict[str, str] = {
        "businessName": a.business_name,
        "tradingName": a.trading_name,
        "clientFullName": a.client_full_name,
        "dateOfBirth": a.date_of_birth,
        "email": a.email,
        "phone": a.phone,
        "registeredOffice": a.registered_office,
        "registeredPostCode": a.registered_post_code,
        "postalAddress": a.postal_address,
        "postalPostCode": a.postal_post_code,
        "businessAddress": a.business_address,
        "businessPostCode": a.business_post_code,
        "departmentContact": a.department_contact,
        "contactNumber": a.contact_number,
        "departmentEmail": a.department_email,
        "officeNumber": a.office_number,
        "nameOfDirector": a.name_of_director,
        "addressOfDirector": a.address_of_director,
        "driversLicense": a.drivers_license,
        "acn_abn": a.acn_abn,
        "mainService": a.main_service,
        "contractStart": a.contract_start_date,
        "contractStartDate": a.contract_start_date,
        "JobType": a.job_type,
        "businessType": a.business_type,
        "ACN": a.acn,
        "ABN": a.abn,
        "address": a.address,
        "city": a.city,
        "state": a.state,
        "postalCode": a.postal_code,
        "website": a.website,
        "additionalNotes": a.additional_notes,
        "submittedAt": submitted,
    }
    base = {key: value or "" for key, value in base.items()}

    # Aliases used by historical template field names
    base["companyName"] = base["businessName"]
    base["dearName"] = base["businessName"]
    base["customerName"] = base["businessName"]
    base["clientEmail"] = base["email"]
    base["mobileNumber"] = base["phone"]
    base["postCode"] = (
        base["registeredPostCode"] or base["postalPostCode"] or base["businessPostCode"]
    )
    base["p4CompanyName"] = base["businessName"]
    base["servicesAssist"] = base["mainService"]
    base["directorName"] = base["nameOfDirector"]
    base["p5ClientName"] = base["clientFullName"]
    base["p5OtherName"] = base["directorName"]

    date_only = submitted.split(",")[0]
    base["p5Date1"] = date_only
    base["p5Date2"] = date_only

    base["guarantorCompany"] = base["businessName"]
    base["guarantorACNABN"] = base["ACN"] or base["ABN"] or base["acn_abn"]

    if template_name == PRICING_TEMPLATE and summary is not None:
        base["service"] = summary.service or base["servicesAssist"]
        base["planName"] = summary.plan.name if summary.plan else ""
        base["planPrice"] = money(summary.plan.price) if summary.plan else ""
        base["addOnsSummary"] = add_ons_summary(summary.add_ons)
        base["total"] = money(summary.total)

    if template_name == CONFIDENTIALITY_TEMPLATE:
        executed = format_date(local_now(tz, now))
        base["executedDate"] = executed
        base["date"] = executed

    return base
