"""
Error taxonomy shared by the HTTP API and the real-time channel.

Every error carries a bilingual (fr / en) user-facing message and the HTTP
status it maps to.  WebSocket handlers reply with the same payload as an
``error`` event instead of closing the connection.
"""

from __future__ import annotations


class DispatchError(Exception):
    status_code = 500
    code = "server_error"
    default_message = {"fr": "Erreur serveur", "en": "Server error"}

    def __init__(self, fr: str | None = None, en: str | None = None):
        self.message = {
            "fr": fr or self.default_message["fr"],
            "en": en or self.default_message["en"],
        }
        super().__init__(self.message["en"])

    def to_payload(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message}


class ValidationError(DispatchError):
    status_code = 422
    code = "validation_error"
    default_message = {"fr": "Données invalides", "en": "Invalid data"}


class AuthenticationError(DispatchError):
    status_code = 401
    code = "authentication_error"
    default_message = {"fr": "Token invalide", "en": "Invalid token"}


class AuthorizationError(DispatchError):
    status_code = 403
    code = "authorization_error"
    default_message = {"fr": "Non autorisé", "en": "Not authorized"}


class NotFoundError(DispatchError):
    status_code = 404
    code = "not_found"
    default_message = {"fr": "Ressource non trouvée", "en": "Resource not found"}


class InvalidStateTransition(DispatchError):
    """Raised when a status change violates a state machine."""

    status_code = 409
    code = "invalid_transition"
    default_message = {"fr": "Transition de statut invalide", "en": "Invalid status transition"}


class ConcurrentUpdate(DispatchError):
    """A compare-and-set lost against a concurrent writer."""

    status_code = 409
    code = "concurrent_update"
    default_message = {
        "fr": "Modifié entre-temps, réessayez",
        "en": "Modified concurrently, please retry",
    }


class DurableWriteFailure(DispatchError):
    status_code = 503
    code = "durable_write_failure"
    default_message = {
        "fr": "Enregistrement impossible, réessayez",
        "en": "Could not persist, please retry",
    }


class PartialSettlementFailure(DispatchError):
    status_code = 500
    code = "partial_settlement"
    default_message = {
        "fr": "Règlement non appliqué, aucune modification",
        "en": "Settlement not applied, nothing changed",
    }
