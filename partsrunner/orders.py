import uuid

from partsrunner.database import datastore_call
from partsrunner.errors import NotFound, ValidationFailed
from partsrunner.models import Order, OrderItem, PendingPayout
from partsrunner.money import to_cents
from partsrunner.schemas import CreateOrderRequest, OrderStatus

ORDER_FILTERS = ("user_id", "runner_id", "store_id")


def create_order(db, request: CreateOrderRequest) -> Order:
    subtotal = to_cents(request.subtotal)
    delivery_fee = to_cents(request.delivery_fee)
    tax = to_cents(request.tax)
    total = to_cents(request.total) if request.total is not None else subtotal + delivery_fee + tax

    order = Order(
        id=str(uuid.uuid4()),
        user_id=request.user_id,
        store_id=request.store_id,
        status=OrderStatus.PENDING.value,
        subtotal_cents=subtotal,
        delivery_fee_cents=delivery_fee,
        tax_cents=tax,
        total_cents=total,
        delivery_address=request.delivery_address,
    )
    with datastore_call(db, "create order"):
        db.add(order)
        for item in request.items:
            price = to_cents(item.price)
            line_total = to_cents(item.subtotal) if item.subtotal is not None else price * item.quantity
            db.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price_cents=price,
                subtotal_cents=line_total,
            ))
        db.commit()
        db.refresh(order)
    return order


def list_orders(db, **filters) -> list:
    """Orders for exactly one of a customer, a runner or a store, newest first."""
    supplied = {name: value for name, value in filters.items() if name in ORDER_FILTERS and value}
    if len(supplied) != 1:
        raise ValidationFailed("Exactly one of user_id, runner_id, or store_id is required")

    (column, value), = supplied.items()
    with datastore_call(db, "fetch orders"):
        return (
            db.query(Order)
            .filter(getattr(Order, column) == value)
            .order_by(Order.created_at.desc())
            .all()
        )


def _get_order(db, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def update_order_status(db, order_id: str, status: OrderStatus) -> Order:
    with datastore_call(db, "update order status"):
        order = _get_order(db, order_id)
        order.status = status.value
        db.commit()
        db.refresh(order)
    return order


def assign_runner(db, order_id: str, runner_id: str) -> Order:
    with datastore_call(db, "assign runner"):
        order = _get_order(db, order_id)
        order.runner_id = runner_id
        order.status = OrderStatus.CONFIRMED.value
        # Driver payouts recorded before a runner was known get their recipient now.
        for payout in db.query(PendingPayout).filter_by(order_id=order_id, recipient_role="driver"):
            if payout.recipient_id is None:
                payout.recipient_id = runner_id
        db.commit()
        db.refresh(order)
    return order
