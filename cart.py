"""
Cart pricing.

The cart itself lives on the client; the server re-prices it from the
catalog so totals never trust client-side prices.
"""

from dataclasses import dataclass, field

from models import Product

FREE_SHIPPING_THRESHOLD = 1000.0  # EGP
SHIPPING_FEE = 50.0


@dataclass
class CartLine:
    product: Product
    quantity: int

    @property
    def line_total(self) -> float:
        return round(self.product.price * self.quantity, 2)


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    discount: float = 0.0

    def _find(self, product_id: int) -> CartLine | None:
        for line in self.lines:
            if line.product.id == product_id:
                return line
        return None

    def add_item(self, product: Product, quantity: int = 1) -> CartLine | None:
        """Add ``quantity`` of ``product``, merging with an existing line."""
        line = self._find(product.id)
        if line:
            return self.update_quantity(product.id, line.quantity + quantity)
        if quantity <= 0 or product.stock <= 0:
            return None
        line = CartLine(product=product, quantity=min(quantity, product.stock))
        self.lines.append(line)
        return line

    def update_quantity(self, product_id: int, quantity: int) -> CartLine | None:
        line = self._find(product_id)
        if line is None:
            raise ValueError(f"Product {product_id} is not in the cart")
        if quantity <= 0:
            self.remove_item(product_id)
            return None
        line.quantity = min(quantity, line.product.stock)
        return line

    def remove_item(self, product_id: int):
        self.lines = [l for l in self.lines if l.product.id != product_id]

    @property
    def item_count(self) -> int:
        return sum(l.quantity for l in self.lines)

    @property
    def subtotal(self) -> float:
        return round(sum(l.product.price * l.quantity for l in self.lines), 2)

    @property
    def shipping_cost(self) -> float:
        if not self.lines or self.subtotal >= FREE_SHIPPING_THRESHOLD:
            return 0.0
        return SHIPPING_FEE

    @property
    def free_shipping_remaining(self) -> float:
        return round(max(0.0, FREE_SHIPPING_THRESHOLD - self.subtotal), 2)

    @property
    def total(self) -> float:
        discount = min(self.discount, self.subtotal)
        return round(self.subtotal + self.shipping_cost - discount, 2)

    def summary(self) -> dict:
        return {
            "items": [
                {
                    "product_id": l.product.id,
                    "name": l.product.name,
                    "price": l.product.price,
                    "quantity": l.quantity,
                    "line_total": l.line_total,
                }
                for l in self.lines
            ],
            "item_count": self.item_count,
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "discount": round(min(self.discount, self.subtotal), 2),
            "total": self.total,
            "free_shipping_remaining": self.free_shipping_remaining,
        }
