from typing import Optional

from fastapi import APIRouter, Depends

from partsrunner.auth import verify_token
from partsrunner.database import get_db
from partsrunner.orders import assign_runner, create_order, list_orders, update_order_status
from partsrunner.schemas import AssignRunnerRequest, CreateOrderRequest, UpdateOrderStatusRequest

router = APIRouter(dependencies=[Depends(verify_token)])


@router.post("/create-order", status_code=201)
def create_order_api(request: CreateOrderRequest, db=Depends(get_db)):
    order = create_order(db, request)
    return {"order": order.to_dict()}


@router.get("/get-orders")
def get_orders_api(
    user_id: Optional[str] = None,
    runner_id: Optional[str] = None,
    store_id: Optional[str] = None,
    db=Depends(get_db)
):
    orders = list_orders(db, user_id=user_id, runner_id=runner_id, store_id=store_id)
    return {"orders": [order.to_dict() for order in orders]}


@router.post("/update-order-status")
def update_order_status_api(request: UpdateOrderStatusRequest, db=Depends(get_db)):
    order = update_order_status(db, request.order_id, request.status)
    return {"order": order.to_dict()}


@router.post("/assign-runner")
def assign_runner_api(request: AssignRunnerRequest, db=Depends(get_db)):
    order = assign_runner(db, request.order_id, request.runner_id)
    return {"order": order.to_dict()}
