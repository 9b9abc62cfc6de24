"""
Signing API
===========
Endpoints for agreement intake, signing and operational checks.

POST /api/new-client-login - Record a client starting the flow
POST /api/save-pricing-summary - Store the chosen plan
POST /api/submit-agreement - Create drafts and mail the client links
GET /api/sign/session/{token} - Header details for the signing page
GET /api/sign/preview/{token} - Current PDF for the token's document
POST /api/sign/{token} - Client signs one document
POST /api/sign-director/{token} - Director counter-signs one document
"""

import os
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import ValidationError
from core.logger import logger
from services.signing.context import SigningContext
from services.signing.intake import IntakeService
from services.signing.state_machine import SigningStateMachine

router = APIRouter(prefix="/api", tags=["Signing"])


def get_context(request: Request) -> SigningContext:
    return request.app.state.context


def get_state_machine(context: SigningContext = Depends(get_context)) -> SigningStateMachine:
    return SigningStateMachine(context)


def get_intake(context: SigningContext = Depends(get_context)) -> IntakeService:
    return IntakeService(context)


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class CoordinateOverride(BaseModel):
    """Caller-supplied signature rectangle; every field optional."""
    page: Optional[Union[int, str]] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    origin: Optional[str] = None

    @field_validator("page")
    @classmethod
    def known_page(cls, v):
        if v is None or v == "last":
            return v
        if isinstance(v, str) and v.isdigit():
            v = int(v)
        if isinstance(v, int) and v >= 1:
            return v
        raise ValueError('page must be a positive integer or "last"')

    @field_validator("origin")
    @classmethod
    def known_origin(cls, v):
        if v is not None and v not in ("top-left", "bottom-left"):
            raise ValueError("origin must be top-left or bottom-left")
        return v


class SignRequest(BaseModel):
    signature: Optional[str] = None
    coords: Optional[CoordinateOverride] = None


class NewClientLogin(BaseModel):
    businessName: str = ""
    email: str = ""
    phone: str = ""


class PriceLineModel(BaseModel):
    name: str = ""
    price: Optional[float] = None


class PricingSummaryRequest(BaseModel):
    businessName: str = ""
    email: str = ""
    phone: str = ""
    service: str = ""
    plan: Optional[Dict[str, Any]] = None
    addOns: List[PriceLineModel] = Field(default_factory=list)
    total: Optional[float] = None


class SubmitAgreementRequest(BaseModel):
    """Intake form; PascalCase and camelCase keys are both accepted."""
    model_config = ConfigDict(extra="allow")


def _overrides(body: SignRequest) -> Optional[Dict[str, Any]]:
    if body.coords is None:
        return None
    return body.coords.model_dump(exclude_none=True)


def _signature(body: SignRequest) -> str:
    if not body.signature:
        raise ValidationError("Missing signature")
    return body.signature


# =============================================================================
# INTAKE
# =============================================================================

@router.post("/new-client-login")
def new_client_login(body: NewClientLogin, intake: IntakeService = Depends(get_intake)):
    logger.info(f"NEW_CLIENT_LOGIN_START email={body.email}")
    intake.record_client_login(body.businessName, body.email, body.phone)
    return {"message": "Client saved and emails sent."}


@router.post("/save-pricing-summary")
def save_pricing_summary(body: PricingSummaryRequest, intake: IntakeService = Depends(get_intake)):
    logger.info(f"SAVE_PRICING_START email={body.email}")
    intake.save_pricing_summary(body.model_dump())
    return {"message": "Pricing summary saved"}


@router.post("/submit-agreement")
def submit_agreement(body: SubmitAgreementRequest, intake: IntakeService = Depends(get_intake)):
    logger.info("SUBMIT_AGREEMENT_START")
    return intake.submit_agreement(body.model_dump())


# =============================================================================
# SIGNING
# =============================================================================

@router.get("/sign/session/{token}")
def sign_session(token: str, machine: SigningStateMachine = Depends(get_state_machine)):
    info = machine.session_info(token)
    if info is None:
        return JSONResponse(status_code=404, content={})
    return info


@router.get("/sign/preview/{token}")
def sign_preview(token: str, machine: SigningStateMachine = Depends(get_state_machine)):
    """Stream the PDF; a lost artifact is regenerated instead of a 404."""
    path = machine.preview(token)
    return FileResponse(path, media_type="application/pdf", filename=os.path.basename(path))


@router.post("/sign/{token}")
def client_sign(token: str, body: SignRequest, machine: SigningStateMachine = Depends(get_state_machine)):
    logger.info("CLIENT_SIGN_START")
    result = machine.client_sign(token, _signature(body), _overrides(body))
    return result.to_response()


@router.post("/sign-director/{token}")
def director_sign(token: str, body: SignRequest, machine: SigningStateMachine = Depends(get_state_machine)):
    logger.info("DIRECTOR_SIGN_START")
    result = machine.director_sign(token, _signature(body), _overrides(body))
    return result.to_response()


@router.get("/agreements/{agreement_id}/status")
def agreement_status(agreement_id: str, machine: SigningStateMachine = Depends(get_state_machine)):
    return machine.status(agreement_id)


# =============================================================================
# OPERATIONS
# =============================================================================

@router.get("/debug/templates")
def debug_templates(context: SigningContext = Depends(get_context)):
    return context.registry.template_status()


@router.get("/debug/directors-env")
def debug_directors_env(context: SigningContext = Depends(get_context)):
    return {
        "DIRECTOR_EMAILS": os.environ.get("DIRECTOR_EMAILS") or None,
        "DIRECTOR_EMAIL": os.environ.get("DIRECTOR_EMAIL") or None,
        "parsed": context.director_emails,
    }


@router.get("/health")
def health(context: SigningContext = Depends(get_context)):
    settings = context.settings
    checks = {
        "ok": True,
        "app_env": settings.app_env,
        "jwt_secret": bool(os.environ.get("JWT_SECRET")),
        "mailer": "smtp" if context.mailer.configured else "log-only",
        "archive": "graph" if settings.graph_configured else "disabled",
        "database": "ok" if context.database.ping() else "not_connected",
        "templates": context.registry.template_status(),
    }
    logger.info(f"HEALTH database={checks['database']}")
    return checks
