"""
Draft Self-Healer
=================
Rebuilds a missing draft PDF from the agreement's stored data.

Artifacts live on local disk and can vanish (container restarts, cleanup
jobs). Preview and signing call in here instead of failing with a 404.
"""

import time
import uuid
from pathlib import Path
from typing import Optional

from core.logger import logger
from services.signing.field_renderer import render_fields
from services.signing.records import Agreement, AgreementDocument, Role
from services.signing.template_input import build_template_input


def artifact_exists(path: Optional[str]) -> bool:
    return bool(path) and Path(path).exists()


class DraftSelfHealer:
    """Regenerate drafts and pick the best existing artifact for a role."""

    def __init__(self, context):
        self.ctx = context

    def regenerate(self, agreement: Agreement, document: AgreementDocument) -> str:
        """Render a fresh draft for ``document``; nothing is persisted."""
        template = self.ctx.registry.get(document.name)
        template_path = self.ctx.registry.template_path(template)
        summary = self.ctx.summaries.latest_for_email(agreement.email)
        values = build_template_input(
            document.name, agreement, summary, now=self.ctx.clock(), tz=self.ctx.settings.timezone
        )

        stamp = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        out_path = Path(self.ctx.settings.pdf_dir) / f"rehydrated-{document.name}-{stamp}.pdf"
        render_fields(template_path, template.fields, values, out_path)
        return str(out_path)

    def ensure_draft(self, agreement: Agreement, document: AgreementDocument) -> str:
        """
        Regenerate the draft and return its path.

        The new path is recorded on the document only when no draft path
        was recorded before; an existing (even dangling) path is kept.
        """
        logger.info(f"ENSURE_DRAFT_START doc={document.name}")
        path = self.regenerate(agreement, document)
        if not document.draft_pdf_path:
            document.draft_pdf_path = path
            self.ctx.agreements.save(agreement)
        logger.info(f"ENSURE_DRAFT_OK path={path}")
        return path

    def usable_artifact(self, agreement: Agreement, document: AgreementDocument, role: Role) -> str:
        """
        Most advanced artifact the role should see, regenerating when none
        is on disk. Clients see their own copy first, directors the final.
        """
        if role == Role.CLIENT:
            candidates = (document.client_signed_pdf_path, document.draft_pdf_path, document.final_signed_pdf_path)
        else:
            candidates = (document.final_signed_pdf_path, document.client_signed_pdf_path, document.draft_pdf_path)

        path = next((p for p in candidates if p), None)
        if artifact_exists(path):
            return path

        logger.info(f"PREVIEW_SELF_HEAL doc={document.name}")
        return self.ensure_draft(agreement, document)
