"""Lightweight stand-ins for Stripe API objects."""

from types import SimpleNamespace


class FakeList:
    """Mimics a Stripe ListObject."""

    def __init__(self, data, has_more=False):
        self.data = list(data)
        self.has_more = has_more

    def auto_paging_iter(self):
        return iter(self.data)


def make_customer(customer_id, email=None, name=None, **extra):
    return SimpleNamespace(id=customer_id, email=email, name=name, **extra)


def make_line_item(name=None, quantity=1, unit_amount=0, amount_total=None,
                   description=None, product_id="prod_default"):
    product = SimpleNamespace(id=product_id, name=name) if name else None
    price = SimpleNamespace(unit_amount=unit_amount, product=product)
    return SimpleNamespace(
        description=description,
        quantity=quantity,
        amount_total=amount_total if amount_total is not None else (unit_amount or 0) * (quantity or 1),
        price=price,
    )


def make_session(session_id, line_items=(), amount_total=None, payment_status="paid",
                 payment_intent=None, created=1700000000):
    line_items = list(line_items)
    if amount_total is None:
        amount_total = sum(li.amount_total for li in line_items)
    return SimpleNamespace(
        id=session_id,
        amount_total=amount_total,
        payment_status=payment_status,
        payment_intent=payment_intent,
        created=created,
        line_items=FakeList(line_items),
    )


def make_payment_intent(pi_id, amount, status="succeeded", description=None, created=1700000000):
    return SimpleNamespace(
        id=pi_id,
        amount=amount,
        status=status,
        description=description,
        created=created,
    )
