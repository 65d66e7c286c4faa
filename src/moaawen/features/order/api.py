"""
Order session HTTP endpoints.

Every route addresses one conversation session by business, channel and
customer. Result envelopes are returned as-is on success; expected errors
become 404/409/422 with the envelope as `detail`.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from moaawen.config import config
from moaawen.errors import ConcurrentUpdateError, OrderError, StoreUnavailable
from moaawen.logging_config import log_with_context, setup_logging_from_config

from .actions import OrderActionInterpreter, clean_phone, strip_action_block
from .service import OrderSessionService
from .tools import get_order_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders/sessions/{business_id}/{channel}/{customer_id}", tags=["orders"])

ERROR_STATUS = {
    OrderError.NOT_FOUND.value: 404,
    OrderError.ITEM_NOT_FOUND.value: 404,
    OrderError.NO_ACTIVE_SESSION.value: 404,
    OrderError.OUT_OF_STOCK.value: 409,
    OrderError.ORDER_TERMINAL.value: 409,
    OrderError.EMPTY_ORDER.value: 409,
    OrderError.INCOMPLETE_INFO.value: 422,
    OrderError.INVALID_PRICE.value: 422,
    OrderError.INVALID_ARGUMENT.value: 422,
}


class AddItemRequest(BaseModel):
    """Request model for adding a variant to the session."""
    product_id: str
    variant_id: str
    quantity: int = Field(default=1)


class CustomerInfoRequest(BaseModel):
    """Request model for customer details; omitted fields are left as they are."""
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class ActionsRequest(BaseModel):
    """A generated reply carrying an order action block."""
    text: str


def _respond(result: Dict[str, Any]) -> Dict[str, Any]:
    if result.get("success"):
        return result
    raise HTTPException(status_code=ERROR_STATUS.get(result.get("error"), 400), detail=result)


def _call(func, *args) -> Dict[str, Any]:
    try:
        return _respond(func(*args))
    except StoreUnavailable as e:
        log_with_context(logger, logging.ERROR, "Order store unavailable", error=str(e))
        raise HTTPException(
            status_code=503,
            detail={"success": False, "error": "store_unavailable", "message": str(e)},
        )
    except ConcurrentUpdateError as e:
        raise HTTPException(
            status_code=409,
            detail={"success": False, "error": "concurrent_update", "message": str(e)},
        )


@router.get("")
def get_session_summary(business_id: str, channel: str, customer_id: str,
                        service: OrderSessionService = Depends(get_order_service)):
    return _call(service.get_order_summary, customer_id, business_id, channel)


@router.post("/items")
def add_session_item(business_id: str, channel: str, customer_id: str, request: AddItemRequest,
                     service: OrderSessionService = Depends(get_order_service)):
    return _call(service.add_item, customer_id, business_id, channel,
                 request.product_id, request.variant_id, request.quantity)


@router.delete("/items/{product_id}/{variant_id}")
def remove_session_item(business_id: str, channel: str, customer_id: str, product_id: str, variant_id: str,
                        service: OrderSessionService = Depends(get_order_service)):
    return _call(service.remove_item, customer_id, business_id, channel, product_id, variant_id)


@router.patch("/customer")
def update_session_customer(business_id: str, channel: str, customer_id: str, request: CustomerInfoRequest,
                            service: OrderSessionService = Depends(get_order_service)):
    data = request.model_dump(exclude_none=True)
    if data.get("phone"):
        data["phone"] = clean_phone(data["phone"])
    return _call(service.update_customer_info, customer_id, business_id, channel, data)


@router.post("/confirm")
def confirm_session(business_id: str, channel: str, customer_id: str,
                    service: OrderSessionService = Depends(get_order_service)):
    return _call(service.confirm_order, customer_id, business_id, channel)


@router.post("/cancel")
def cancel_session(business_id: str, channel: str, customer_id: str,
                   service: OrderSessionService = Depends(get_order_service)):
    return _call(service.cancel_order, customer_id, business_id, channel)


@router.post("/actions")
def run_session_actions(business_id: str, channel: str, customer_id: str, request: ActionsRequest,
                        service: OrderSessionService = Depends(get_order_service)):
    """Run an action block and hand back the customer-facing reply with one result per command."""
    interpreter = OrderActionInterpreter(service)

    def run(customer, business, chan, text):
        results = interpreter.execute(customer, business, chan, text)
        return {"success": True, "data": {"reply": strip_action_block(text), "results": results}, "error": None}

    return _call(run, customer_id, business_id, channel, request.text)


def create_app() -> FastAPI:
    setup_logging_from_config()
    logger.info("Starting order API", extra={"orders_table": config.ORDERS_TABLE, "region": config.AWS_REGION})
    logger.debug(config.summary())
    app = FastAPI(title="Moaawen Orders")
    app.include_router(router)
    return app
