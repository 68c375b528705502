"""
Calcul des totaux d'un panier (fonction pure, sans effet de bord).

Partition des lignes par nature:
- sub_*     = articles + remises
- service_* = frais de service
- cart_*    = sub + service (avant frais de paiement)
- payment_* = frais du moyen de paiement, « grossis » pour que le fournisseur, après avoir
              prélevé son pourcentage, laisse encore le montant fixe intégralement:
              charge = (base + fixe) / (1 - pourcentage)
- grand_*   = cart + payment

Tous les montants sont des entiers en centimes; l'arrondi half-up est appliqué une seule
fois par champ dérivé (jamais sur les sommes cumulées).
"""
from decimal import Decimal
from typing import Dict, Iterable

from pydantic import BaseModel, ConfigDict

from cartpay.carts.models import Cart, CartItem, ItemKind
from cartpay.utils.money import round_half_up, to_decimal


class Totals(BaseModel):
    model_config = ConfigDict(frozen=True)

    sub_pre_taxes: int = 0
    sub_taxes: int = 0
    sub_post_taxes: int = 0

    service_pre_taxes: int = 0
    service_taxes: int = 0
    service_post_taxes: int = 0

    cart_pre_taxes: int = 0
    cart_taxes: int = 0
    cart_post_taxes: int = 0

    payment_pre_taxes: int = 0
    payment_taxes: int = 0
    payment_post_taxes: int = 0

    grand_pre_taxes: int = 0
    grand_taxes: int = 0
    grand_post_taxes: int = 0

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump()


def _sum(items: Iterable[CartItem]):
    pre = taxes = post = 0
    for item in items:
        pre += item.subtotal
        taxes += item.tax_amount
        post += item.total
    return pre, taxes, post


def compute_totals(cart: Cart) -> Totals:
    sub_pre, sub_taxes, sub_post = _sum(
        i for i in cart.items if i.kind in (ItemKind.ITEM, ItemKind.DISCOUNT)
    )
    service_pre, service_taxes, service_post = _sum(
        i for i in cart.items if i.kind == ItemKind.SERVICE
    )

    cart_pre = sub_pre + service_pre
    cart_taxes = sub_taxes + service_taxes
    cart_post = sub_post + service_post

    payment_pre = payment_taxes = payment_post = 0
    method = cart.payment_method
    if method is not None:
        base = Decimal(cart_pre)
        percentage = to_decimal(method.percentage or 0) / 100
        flat = Decimal(method.price or 0)

        charge = (base + flat) / (1 - percentage)

        payment_pre = round_half_up(charge - base)
        payment_taxes = round_half_up(payment_pre * method.tax_percentage / 100)
        payment_post = payment_pre + payment_taxes

    return Totals(
        sub_pre_taxes=sub_pre,
        sub_taxes=sub_taxes,
        sub_post_taxes=sub_post,
        service_pre_taxes=service_pre,
        service_taxes=service_taxes,
        service_post_taxes=service_post,
        cart_pre_taxes=cart_pre,
        cart_taxes=cart_taxes,
        cart_post_taxes=cart_post,
        payment_pre_taxes=payment_pre,
        payment_taxes=payment_taxes,
        payment_post_taxes=payment_post,
        grand_pre_taxes=cart_pre + payment_pre,
        grand_taxes=cart_taxes + payment_taxes,
        grand_post_taxes=cart_post + payment_post,
    )
