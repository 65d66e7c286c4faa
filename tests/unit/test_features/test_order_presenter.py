from decimal import Decimal

from moaawen.features.order.presenter import OrderPresenter, format_money


def _order(**overrides):
    order = {
        "currency": "USD",
        "items": [{
            "product_title": "Linen Shirt",
            "variant_name": "Blue / M",
            "quantity": 2,
            "price": Decimal("10"),
            "total_price": Decimal("20"),
        }],
        "subtotal": Decimal("20"),
        "tax": Decimal("0"),
        "shipping": Decimal("0"),
        "discount": Decimal("0"),
        "total": Decimal("20"),
        "customer": {"name": "", "phone": "", "address": "", "email": ""},
    }
    order.update(overrides)
    return order


def test_format_money():
    assert format_money(Decimal("5")) == "$5.00"
    assert format_money(2.5, "EUR") == "€2.50"
    assert format_money("100", "LBP") == "100.00 LBP"


def test_empty_order():
    presenter = OrderPresenter()
    assert presenter.render_summary(None) == "Your cart is empty."
    assert presenter.render_summary(_order(items=[])) == "Your cart is empty."


def test_summary_lines():
    text = OrderPresenter().render_summary(_order())

    assert text.splitlines() == [
        "🛒 **Order Summary**",
        "",
        "1. **Linen Shirt**",
        "   Blue / M",
        "   Quantity: 2",
        "   Price: $10.00 each",
        "   Total: $20.00",
        "",
        "💰 **Subtotal: $20.00**",
        "💳 **Total: $20.00**",
    ]


def test_extra_charges_and_customer():
    order = _order(
        tax=Decimal("1.5"),
        shipping=Decimal("4"),
        total=Decimal("25.5"),
        customer={"name": "Rami", "phone": "+9613123456", "address": "Hamra", "email": ""},
    )

    text = OrderPresenter().render_summary(order)

    assert "📊 Tax: $1.50" in text
    assert "🚚 Shipping: $4.00" in text
    assert "💳 **Total: $25.50**" in text
    assert "👤 **Customer Details**" in text
    assert "Phone: +9613123456" in text
    assert "Email:" not in text


def test_customer_block_needs_name():
    order = _order(customer={"name": "", "phone": "+9613123456"})
    assert "Customer Details" not in OrderPresenter().render_summary(order)

