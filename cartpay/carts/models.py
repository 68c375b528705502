"""
Modèle de données du panier (pydantic).

- Tax / PaymentMethod: référentiels (un seul élément "par défaut" à la fois, garanti côté repository).
- CartItem: ligne de panier; subtotal / tax_amount / total sont recalculés à chaque lecture
  à partir de price, quantity et des taxes (jamais stockés indépendamment).
- Cart: possède ses lignes, son moyen de paiement et l'état de paiement.
  Les opérations add / ensure / remove / set_quantity sont en mémoire; la persistance
  est faite par cartpay.carts.service.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging

from pydantic import BaseModel, Field, computed_field

from cartpay import events
from cartpay.exceptions import LogicError
from cartpay.utils.money import round_half_up, to_decimal

logger = logging.getLogger(__name__)


class ItemKind(str, Enum):
    # Les valeurs sont triables: articles et remises avant les frais de service
    ITEM = "100_item"
    DISCOUNT = "500_discount"
    SERVICE = "900_service_fee"


class PaymentState(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def available_transitions(self) -> List["PaymentState"]:
        return list(_TRANSITIONS[self])

    @staticmethod
    def can_transition(current: Optional["PaymentState"], target: "PaymentState") -> bool:
        if current is None:
            return target in (PaymentState.PENDING, PaymentState.PAID, PaymentState.FAILED)
        return target in _TRANSITIONS[current]


_TRANSITIONS = {
    PaymentState.PENDING: (PaymentState.FAILED, PaymentState.REFUNDED, PaymentState.PAID),
    PaymentState.PAID: (PaymentState.REFUNDED,),
    PaymentState.FAILED: (),
    PaymentState.REFUNDED: (),
}


class Tax(BaseModel):
    id: Optional[int] = None
    name: str = ""
    percentage: float = Field(default=0, ge=0, le=100)
    is_default: bool = False

    @property
    def percentage_decimal(self) -> Decimal:
        return to_decimal(self.percentage) / 100


class PaymentMethod(BaseModel):
    id: Optional[int] = None
    name: str = ""
    code: Optional[str] = None
    # Montant fixe en centimes
    price: int = 0
    percentage: float = 0
    payment_provider: str = ""
    taxes: List[Tax] = Field(default_factory=list)
    is_default: bool = False
    sort_order: Optional[int] = None

    @property
    def tax_percentage(self) -> Decimal:
        return sum((to_decimal(t.percentage) for t in self.taxes), Decimal(0))

    def label(self) -> str:
        return f"{self.name} (ID {self.id})"


class CartItem(BaseModel):
    id: Optional[int] = None
    cart_id: Optional[int] = None
    name: str = ""
    code: Optional[str] = None
    description: Optional[str] = None
    kind: ItemKind = ItemKind.ITEM
    # Prix unitaire en centimes
    price: int = 0
    quantity: Optional[int] = Field(default=None, ge=0)
    is_before_tax: bool = False
    is_tax_free: bool = False
    taxes: List[Tax] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    sort_order: Optional[int] = None

    @property
    def tax_factor(self) -> Decimal:
        if self.is_tax_free:
            return Decimal(0)
        return sum((t.percentage_decimal for t in self.taxes), Decimal(0))

    @computed_field
    @property
    def subtotal(self) -> int:
        return (self.quantity or 0) * self.price

    @computed_field
    @property
    def tax_amount(self) -> int:
        factor = self.tax_factor
        if self.is_before_tax:
            return round_half_up(self.subtotal * factor)
        # Prix TTC: on extrait la part de taxe déjà incluse
        return round_half_up(Decimal(self.subtotal) / (1 + factor) * factor)

    @computed_field
    @property
    def total(self) -> int:
        if self.is_before_tax:
            return self.subtotal + self.tax_amount
        return self.subtotal


ItemRef = Union[CartItem, int]

_ADDRESS_FIELDS = (
    "email",
    "shipping_company", "shipping_firstname", "shipping_lastname",
    "shipping_lines", "shipping_zip", "shipping_city", "shipping_country",
    "billing_differs",
    "billing_company", "billing_firstname", "billing_lastname",
    "billing_lines", "billing_zip", "billing_city", "billing_country",
)


class Cart(BaseModel):
    id: Optional[int] = None
    session_id: str = ""
    currency: Optional[str] = None
    items: List[CartItem] = Field(default_factory=list)
    payment_method_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    payment_state: Optional[PaymentState] = None
    payment_log_id: Optional[int] = None
    created_at: Optional[datetime] = None

    email: Optional[str] = None
    shipping_company: Optional[str] = None
    shipping_firstname: Optional[str] = None
    shipping_lastname: Optional[str] = None
    shipping_lines: Optional[str] = None
    shipping_zip: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_country: Optional[str] = None
    billing_differs: bool = False
    billing_company: Optional[str] = None
    billing_firstname: Optional[str] = None
    billing_lastname: Optional[str] = None
    billing_lines: Optional[str] = None
    billing_zip: Optional[str] = None
    billing_city: Optional[str] = None
    billing_country: Optional[str] = None

    @property
    def totals(self):
        # Recalcul à chaque accès: aucune valeur en cache ne peut diverger des lignes
        from cartpay.carts.totals import compute_totals
        return compute_totals(self)

    @property
    def is_closed(self) -> bool:
        return self.payment_state is not None

    @property
    def list_items(self) -> List[CartItem]:
        return [i for i in self.items if i.kind == ItemKind.ITEM]

    @property
    def service_fees(self) -> List[CartItem]:
        return [i for i in self.items if i.kind == ItemKind.SERVICE]

    @property
    def discounts(self) -> List[CartItem]:
        return [i for i in self.items if i.kind == ItemKind.DISCOUNT]

    def add(self, item: CartItem, quantity: int = 1, default_tax: Optional[Tax] = None) -> CartItem:
        if item.quantity is None:
            item.quantity = quantity
        if not item.is_tax_free and not item.taxes and default_tax is not None:
            item.taxes = [default_tax]
        if item.sort_order is None:
            item.sort_order = max((i.sort_order or 0 for i in self.items), default=0) + 1
        item.cart_id = self.id

        events.fire("cart.before_add", self, item)
        self.items.append(item)
        self._sort_items()
        events.fire("cart.after_add", self, item)
        return item

    def add_many(self, *items: CartItem, default_tax: Optional[Tax] = None) -> None:
        for item in items:
            self.add(item, default_tax=default_tax)

    def ensure(self, item: CartItem, quantity: Optional[int] = None, default_tax: Optional[Tax] = None) -> CartItem:
        """
        Garantit la présence d'une ligne identifiée par son code.
        - Ligne existante: mise à jour de ses champs (sauf quantité), quantité imposée si fournie.
        - Sinon: ajout avec la quantité fournie (1 par défaut).
        """
        if item.code is None:
            raise ValueError('Only CartItems with a "code" property can be ensured')

        existing = self.find_by_code(item.code)
        if existing is None:
            return self.add(item, quantity if quantity is not None else 1, default_tax=default_tax)

        if existing is not item:
            for key in type(item).model_fields:
                if key in ("id", "cart_id", "quantity", "sort_order"):
                    continue
                # Les taxes déjà rattachées restent en place si la nouvelle ligne n'en fournit pas
                if key == "taxes" and not item.taxes:
                    continue
                setattr(existing, key, getattr(item, key))
        if quantity is not None:
            self.set_quantity(existing, quantity)
        self._sort_items()
        return existing

    def remove(self, item: ItemRef) -> CartItem:
        item = self.resolve_item(item)
        events.fire("cart.before_remove", self, item)
        self.items = [i for i in self.items if i is not item]
        events.fire("cart.after_remove", self, item)
        return item

    def remove_by_code(self, code: str) -> List[CartItem]:
        matching = [i for i in self.items if i.code == code]
        for item in matching:
            self.remove(item)
        return matching

    def set_quantity(self, item: ItemRef, quantity: int) -> CartItem:
        if quantity < 0:
            raise ValueError("quantity must be >= 0")
        item = self.resolve_item(item)
        events.fire("cart.before_quantity_change", self, item)
        item.quantity = quantity
        events.fire("cart.after_quantity_change", self, item)
        return item

    def set_payment_method(self, method: PaymentMethod) -> None:
        self.payment_method = method
        self.payment_method_id = method.id

    def find_by_code(self, code: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.code == code), None)

    def resolve_item(self, item: ItemRef) -> CartItem:
        """Retourne la ligne du panier (par instance ou par id); LookupError si absente."""
        if isinstance(item, CartItem):
            if any(i is item for i in self.items):
                return item
            if item.id is None:
                raise LookupError("The modified item does not belong to this cart.")
            item = item.id
        found = next((i for i in self.items if i.id is not None and i.id == item), None)
        if found is None:
            raise LookupError(f"Item {item} is not in this cart.")
        return found

    def transition_to(self, state: PaymentState) -> None:
        if not PaymentState.can_transition(self.payment_state, state):
            raise LogicError(
                f"Transition d'état de paiement illégale: {self.payment_state} -> {state.value}"
            )
        self.payment_state = state

    def fill_checkout_data(self, data: Dict[str, Any]) -> None:
        for key in _ADDRESS_FIELDS:
            if key in data:
                setattr(self, key, data[key])

    def shipping_address_lines(self, reverse_zip: bool = False) -> List[str]:
        name = " ".join(p for p in (self.shipping_firstname, self.shipping_lastname) if p)
        city = (
            f"{self.shipping_city or ''} {self.shipping_zip or ''}"
            if reverse_zip
            else f"{self.shipping_zip or ''} {self.shipping_city or ''}"
        ).strip()
        parts = [self.shipping_company, name, self.shipping_lines, city, self.shipping_country]
        return [p for p in parts if p]

    def snapshot(self) -> Dict[str, Any]:
        """Copie dénormalisée du panier pour le journal de paiement."""
        data = self.model_dump(mode="json")
        data["totals"] = self.totals.as_dict()
        return data

    def _sort_items(self) -> None:
        self.items.sort(key=lambda i: (i.kind.value, i.sort_order or 0))
