"""
Signing State Machine
=====================
Applies one signature per request and decides what happens next.

Per document: draft -> client-signed -> final-signed.
Per agreement: collecting-client-signatures -> collecting-director-signatures
-> complete.

The client walks the documents in registry order, one token at a time.
Once the last document is client-signed every document gets one slot per
configured director, and each director then walks the documents with
their own token chain. Nothing is accepted out of order.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

from core.errors import AuthError, BadRequest, Conflict, NotFound
from core.logger import logger
from services.archive import safe_folder_name
from services.mailer import MailAttachment, MailMessage, bcc_list
from services.signing.records import (
    Agreement,
    AgreementDocument,
    DirectorSlot,
    Role,
)
from services.signing.self_heal import DraftSelfHealer, artifact_exists
from services.signing.stamp_service import decode_data_url
from services.signing.tokens import SigningClaims


@dataclass
class SignResult:
    """Outcome of one signing request."""
    next_token: Optional[str] = None
    complete: bool = False
    done: bool = False

    def to_response(self) -> Dict[str, Any]:
        if self.next_token:
            return {"nextDocToken": self.next_token}
        if self.complete:
            return {"complete": True}
        return {"done": True}


def _file_stamp(moment) -> str:
    return moment.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")


class SigningStateMachine:
    """Client and director signing over a SigningContext."""

    def __init__(self, context):
        self.ctx = context
        self.healer = DraftSelfHealer(context)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _load(self, claims: SigningClaims) -> Tuple[Agreement, AgreementDocument]:
        agreement = self.ctx.agreements.load(claims.agreement_id)
        if agreement is None:
            raise NotFound("Agreement not found")
        document = agreement.document(claims.document_name)
        if document is None:
            raise NotFound("Document not found")
        return agreement, document

    @staticmethod
    def _require_in_order(
        agreement: Agreement,
        document: AgreementDocument,
        pending: Callable[[AgreementDocument], bool],
    ) -> None:
        for earlier in agreement.documents:
            if earlier.name == document.name:
                return
            if pending(earlier):
                raise Conflict(f"Please sign {earlier.name} first")

    def _save_signature_image(self, prefix: str, agreement: Agreement, document: AgreementDocument,
                              image: bytes, stamp: str) -> str:
        business = safe_folder_name(agreement.business_name or "Client")
        path = Path(self.ctx.settings.signature_dir) / f"{prefix}-sig-{document.name}-{business}-{stamp}-{agreement.id}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(image)
        logger.info(f"SIG_SAVED path={path}")
        return str(path)

    def _archive(self, agreement: Agreement, reason: str) -> None:
        try:
            self.ctx.archiver(agreement, reason)
        except Exception as e:
            logger.error(f"SP_UPLOAD_{reason.upper()}_FAIL id={agreement.id} detail={e!r}")

    def _mint(self, agreement: Agreement, document: AgreementDocument, role: Role,
              director_index: Optional[int] = None) -> str:
        return self.ctx.tokens.sign(SigningClaims(
            agreement_id=agreement.id,
            document_name=document.name,
            role=role,
            director_index=director_index,
        ))

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    def client_sign(self, token: str, signature: str,
                    coords: Optional[Mapping[str, Any]] = None) -> SignResult:
        """
        Stamp the client's signature on the token's document.

        Returns the next document's token while any document is still
        unsigned by the client; otherwise opens the director round and
        returns ``complete``.
        """
        claims = self.ctx.tokens.verify(token, role=Role.CLIENT)
        logger.info(f"CLIENT_SIGN_DECODED agid={claims.agreement_id} doc={claims.document_name}")
        image = decode_data_url(signature)

        agreement, document = self._load(claims)
        if document.client_signed:
            raise Conflict("Document already signed")
        self._require_in_order(agreement, document, lambda d: not d.client_signed)

        template = self.ctx.registry.get(document.name)

        in_file = document.draft_pdf_path
        if not artifact_exists(in_file):
            logger.info(f"CLIENT_SIGN_SELF_HEAL_DRAFT doc={document.name}")
            in_file = self.healer.ensure_draft(agreement, document)

        now = self.ctx.clock()
        stamp = _file_stamp(now)
        out_file = Path(self.ctx.settings.pdf_dir) / f"client-{document.name}-{agreement.id}-{stamp}.pdf"
        self.ctx.stamper.stamp_signature(
            in_file,
            signature,
            template.client_anchor.as_dict() if template.client_anchor else None,
            coords,
            out_file,
            "Client signed at",
        )
        sig_path = self._save_signature_image("client", agreement, document, image, stamp)

        document.client_signature_image_path = sig_path
        document.client_signed_pdf_path = str(out_file)
        document.client_signed = True
        document.client_signature = signature
        document.client_signed_date = now

        next_doc = next((d for d in agreement.documents if not d.client_signed), None)
        if next_doc is not None:
            next_doc.client_sign_token = self._mint(agreement, next_doc, Role.CLIENT)
            self.ctx.agreements.save(agreement)
            logger.info(f"CLIENT_SIGN_DOC_OK doc={document.name} next={next_doc.name}")
            return SignResult(next_token=next_doc.client_sign_token)

        self._open_director_round(agreement, now)
        self.ctx.agreements.save(agreement)
        logger.info(f"CLIENT_SIGN_ALL_DONE agid={agreement.id}")

        self._notify_directors(agreement)
        return SignResult(complete=True)

    def _open_director_round(self, agreement: Agreement, now) -> None:
        emails = self.ctx.director_emails
        if not emails:
            logger.warning("No director emails configured; agreement cannot be counter-signed")
        logger.info(f"[SIGN-CHAIN] Preparing directors {emails}")

        for document in agreement.documents:
            document.directors = [
                DirectorSlot(email=email, sign_token=self._mint(agreement, document, Role.DIRECTOR, index))
                for index, email in enumerate(emails)
            ]
        agreement.client_signed = True
        agreement.client_signed_date = now

    def _notify_directors(self, agreement: Agreement) -> None:
        base_url = self.ctx.settings.public_web_url
        emails = self.ctx.director_emails
        for index, email in enumerate(emails):
            links = [
                f"• {doc.name}: {base_url}/sign-director/{quote(doc.directors[index].sign_token or '', safe='')}"
                for doc in agreement.documents
            ]
            text = (
                f"Client {agreement.business_name} has completed signatures.\n\n"
                f"Please counter-sign the following documents:\n\n" + "\n".join(links) + "\n\n"
                "Thank you."
            )
            logger.info(f"DIRECTOR_MAIL_PREP to={email} links={len(links)}")
            self.ctx.mailer.safe_send(MailMessage(
                to=email,
                bcc=bcc_list(self.ctx.settings.agreements_inbox),
                subject=f"[AGREEMENT][CLIENT-SIGNED] {agreement.business_name}",
                text=text,
            ))
            if index < len(emails) - 1:
                pause = self.ctx.settings.director_mail_pause_seconds
                logger.info(f"DIRECTOR_MAIL_PAUSE seconds={pause}")
                self.ctx.sleep(pause)

    # ------------------------------------------------------------------
    # Director
    # ------------------------------------------------------------------

    def director_sign(self, token: str, signature: str,
                      coords: Optional[Mapping[str, Any]] = None) -> SignResult:
        """
        Stamp one director's signature on the token's document.

        Returns that director's next token, ``done`` once they finished
        while others are pending, or ``complete`` when every slot of every
        document is signed.
        """
        claims = self.ctx.tokens.verify(token, role=Role.DIRECTOR)
        index = claims.director_index or 0
        logger.info(f"DIRECTOR_SIGN_DECODED agid={claims.agreement_id} doc={claims.document_name} index={index}")
        image = decode_data_url(signature)

        agreement, document = self._load(claims)
        if not document.client_signed:
            raise Conflict("Client must sign first")
        slot = document.director(index)
        if slot is None:
            raise BadRequest(f"Director index {index} not configured for this document.")
        if slot.signed:
            raise Conflict("Document already signed by you")
        self._require_in_order(
            agreement, document,
            lambda d: d.director(index) is not None and not d.director(index).signed,
        )

        template = self.ctx.registry.get(document.name)
        anchor = self.ctx.registry.director_anchor(template, index)

        if artifact_exists(document.final_signed_pdf_path):
            base_pdf = document.final_signed_pdf_path
        elif artifact_exists(document.client_signed_pdf_path):
            base_pdf = document.client_signed_pdf_path
        else:
            logger.error(f"DIRECTOR_BASE_PDF_MISSING doc={document.name}")
            raise NotFound(f"Base PDF missing for {document.name}")

        now = self.ctx.clock()
        stamp = _file_stamp(now)
        out_file = Path(self.ctx.settings.pdf_dir) / f"final-{document.name}-d{index + 1}-{agreement.id}-{stamp}.pdf"
        self.ctx.stamper.stamp_signature(
            base_pdf, signature, anchor.as_dict(), coords, out_file, f"Director {index + 1} signed at"
        )
        sig_path = self._save_signature_image(f"director{index + 1}", agreement, document, image, stamp)

        slot.signature_image_path = sig_path
        slot.signature = signature
        slot.signed = True
        slot.signed_date = now
        document.final_signed_pdf_path = str(out_file)

        next_doc = next(
            (d for d in agreement.documents
             if d.client_signed and d.director(index) is not None and not d.director(index).signed),
            None,
        )
        if next_doc is not None and not next_doc.director(index).sign_token:
            next_doc.director(index).sign_token = self._mint(agreement, next_doc, Role.DIRECTOR, index)

        complete = next_doc is None and agreement.all_directors_signed
        if complete:
            agreement.director_signed = True
            agreement.director_signed_date = now

        self.ctx.agreements.save(agreement)
        logger.info(f"DIRECTOR_DOC_SIGNED doc={document.name} index={index}")
        self._archive(agreement, "per_director")

        if next_doc is not None:
            logger.info(f"DIRECTOR_NEXT_DOC doc={next_doc.name}")
            return SignResult(next_token=next_doc.director(index).sign_token)

        if complete:
            self._send_final_bundle(agreement)
            self._archive(agreement, "final")
            logger.info(f"DIRECTOR_ALL_COMPLETE agid={agreement.id}")
            return SignResult(complete=True)

        return SignResult(done=True)

    def _send_final_bundle(self, agreement: Agreement) -> None:
        self.ctx.mailer.safe_send(MailMessage(
            to=agreement.email,
            bcc=bcc_list(*self.ctx.director_emails, self.ctx.settings.agreements_inbox),
            subject=f"[AGREEMENT][FINAL] {agreement.business_name}",
            text="All documents signed by client & directors. Final PDFs attached.",
            attachments=[
                MailAttachment(filename=f"Final_{doc.name}.pdf", path=doc.final_signed_pdf_path)
                for doc in agreement.documents
                if doc.final_signed_pdf_path
            ],
        ))

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def preview(self, token: str) -> str:
        """Path of a PDF the token's holder may view, regenerated if lost."""
        claims = self.ctx.tokens.verify(token)
        agreement = self.ctx.agreements.load(claims.agreement_id)
        if agreement is None:
            raise NotFound("Agreement not found")
        if claims.document_name:
            document = agreement.document(claims.document_name)
        else:
            document = agreement.documents[0] if agreement.documents else None
        if document is None:
            raise NotFound("Document not found")

        path = self.healer.usable_artifact(agreement, document, claims.role)
        logger.info(f"PREVIEW_OK path={path}")
        return path

    def session_info(self, token: str) -> Optional[Dict[str, str]]:
        """
        Header details for the signing page.

        ``{}`` for a bad token, None when the agreement is gone.
        """
        try:
            claims = self.ctx.tokens.verify(token)
        except AuthError as e:
            logger.warning(f"SIGN_SESSION_BAD_TOKEN error={e.message}")
            return {}
        agreement = self.ctx.agreements.load(claims.agreement_id)
        if agreement is None:
            return None
        return {"name": agreement.business_name or "", "email": agreement.email or ""}

    def status(self, agreement_id: str) -> Dict[str, Any]:
        agreement = self.ctx.agreements.load(agreement_id)
        if agreement is None:
            raise NotFound("Agreement not found")
        documents: List[Dict[str, Any]] = []
        for doc in agreement.documents:
            documents.append({
                "name": doc.name,
                "stage": doc.stage.value,
                "directors": [{"email": s.email, "signed": s.signed} for s in doc.directors],
            })
        return {
            "id": agreement.id,
            "stage": agreement.stage.value,
            "clientSigned": agreement.client_signed,
            "directorSigned": agreement.director_signed,
            "documents": documents,
        }
