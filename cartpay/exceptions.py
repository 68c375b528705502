"""
Taxonomie d'erreurs du checkout.

- ValidationError: saisie utilisateur invalide (par champ), récupérable.
- ConfigurationError: fournisseur/devise/moyen de paiement manquant, l'opérateur doit corriger.
- ConcurrencyError: double soumission concurrente pour la même session.
- ProviderError: échec API/réseau d'un fournisseur, toujours converti en résultat échoué.
- PersistenceWarning: écriture impossible après un paiement déjà passé, signalée aux opérateurs.
- LogicError: mauvaise utilisation de l'API (process avant init, transition illégale...).
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    """Classe de base des erreurs du checkout."""

    def __init__(self, message: str, code: str = "checkout_error", status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ValidationError(CheckoutError):
    def __init__(self, errors: Dict[str, str], message: str = "Données de paiement invalides"):
        super().__init__(message, code="validation_error", status_code=422)
        self.errors = dict(errors or {})


class ConfigurationError(CheckoutError):
    def __init__(self, message: str):
        super().__init__(message, code="configuration_error", status_code=500)


class ConcurrencyError(CheckoutError):
    def __init__(self, message: str = "Un paiement est déjà en cours pour cette session"):
        super().__init__(message, code="checkout_in_progress", status_code=409)


class ProviderError(CheckoutError):
    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None, code: str = "provider_error"):
        super().__init__(message, code=code, status_code=502)
        self.data = dict(data or {})


class PersistenceWarning(CheckoutError):
    def __init__(self, message: str):
        super().__init__(message, code="persistence_warning", status_code=500)


class LogicError(CheckoutError):
    def __init__(self, message: str):
        super().__init__(message, code="logic_error", status_code=500)
