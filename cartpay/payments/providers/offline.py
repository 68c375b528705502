from cartpay.payments.providers.base import PaymentProvider


class Offline(PaymentProvider):
    """Facture / virement: aucune opération externe, le paiement reste en attente."""

    identifier = "offline"
    name = "Paiement hors ligne"

    def process(self, result):
        return result.pending()
