"""HTTP errors raised by the store API."""
from typing import Optional

from fastapi import HTTPException


class StoreError(HTTPException):
    status_code = 500
    message = "Erreur interne"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.message, headers=headers)


class Unauthenticated(StoreError):
    status_code = 401
    message = "Non autorisé, token manquant"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(StoreError):
    status_code = 401
    message = "Email ou mot de passe invalide"


class Forbidden(StoreError):
    status_code = 403
    message = "Accès interdit"


class NotFound(StoreError):
    status_code = 404
    message = "Ressource non trouvée"


class DuplicateEmail(StoreError):
    status_code = 400
    message = "Cet email est déjà utilisé"


class DuplicateReview(StoreError):
    status_code = 400
    message = "Vous avez déjà évalué ce produit"


class EmptyOrder(StoreError):
    status_code = 400
    message = "Aucun article dans la commande"
