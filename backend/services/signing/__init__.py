"""
Agreement Signing
=================
Multi-party signing of generated PDF agreements.

Supports:
- Prefilled drafts rendered from fixed PDF templates
- Client signatures, one document at a time
- Counter-signatures from every configured director
- Self-healing of lost draft artifacts
"""

from .records import Agreement, AgreementDocument, DirectorSlot, Role, Summary
from .templates import TemplateRegistry, TemplateField
from .tokens import TokenService, SigningClaims

__all__ = [
    'Agreement',
    'AgreementDocument',
    'DirectorSlot',
    'Role',
    'Summary',
    'TemplateRegistry',
    'TemplateField',
    'TokenService',
    'SigningClaims',
]
