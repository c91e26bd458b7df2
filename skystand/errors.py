"""
skystand.errors — Application exception taxonomy
=================================================

Services raise these; :mod:`skystand.api.main` renders them as
``{"message": ..., "errors": {...}}`` with the matching HTTP status.
"""

from __future__ import annotations


class SkystandError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    default_message: str = "Erreur interne du serveur."

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: dict[str, list[str]] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body: dict = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(SkystandError):
    status_code = 400
    default_message = "Erreur de validation."


class NotFoundError(SkystandError):
    status_code = 404
    default_message = "Ressource introuvable."


class ConflictError(SkystandError):
    """Uniqueness or referential conflict.  400 unless told otherwise."""

    status_code = 400
    default_message = "Conflit avec une ressource existante."


class AuthenticationError(SkystandError):
    status_code = 401
    default_message = "Authentification requise."


class AuthorizationError(SkystandError):
    status_code = 403
    default_message = "Accès refusé."


class UpstreamAssetError(SkystandError):
    """The CDN rejected or failed an upload.  Nothing was written."""

    status_code = 500
    default_message = "Erreur lors de l'envoi du fichier vers le CDN."


class InternalError(SkystandError):
    status_code = 500
