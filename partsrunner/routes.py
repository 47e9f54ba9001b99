from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from partsrunner.auth import verify_token
from partsrunner.config import Settings, get_settings
from partsrunner.connect import account_status, onboard_account
from partsrunner.database import datastore_call, get_db
from partsrunner.money import BreakdownCents
from partsrunner.payments import create_payment_intent
from partsrunner.payouts import allocate_payouts
from partsrunner.schemas import ConnectAccountRequest, CreatePaymentIntentRequest, ProcessPayoutRequest
from partsrunner.stripe_service import get_stripe_gateway
from partsrunner.webhooks import WebhookContext, handle_stripe_webhook

router = APIRouter()


@router.get("/payment-config")
def payment_config(settings: Settings = Depends(get_settings)):
    return {"publishableKey": settings.stripe_publishable_key}


@router.post("/create-payment-intent")
def create_payment_intent_api(
    request: CreatePaymentIntentRequest,
    db=Depends(get_db),
    gateway=Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
    auth=Depends(verify_token)
):
    created = create_payment_intent(db, gateway, request, settings.default_currency)
    return created.to_response()


@router.post("/process-order-payouts")
def process_order_payouts(
    request: ProcessPayoutRequest,
    db=Depends(get_db),
    gateway=Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
    auth=Depends(verify_token)
):
    details = request.order_details
    result = allocate_payouts(
        db,
        gateway,
        request.payment_intent_id,
        details.merchant_id,
        BreakdownCents.from_breakdown(details.breakdown),
        settings.house_account_id,
    )
    with datastore_call(db, "record payouts"):
        db.commit()
    return result.to_response()


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db=Depends(get_db),
    gateway=Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings)
):
    payload = await request.body()
    # Stripe and datastore calls block, so keep them off the event loop.
    status_code, body = await run_in_threadpool(
        handle_stripe_webhook,
        WebhookContext(db=db, gateway=gateway, settings=settings),
        payload,
        stripe_signature,
    )
    return JSONResponse(status_code=status_code, content=body)


@router.post("/stripe-connect/accounts")
def create_connect_account(
    request: ConnectAccountRequest,
    db=Depends(get_db),
    gateway=Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
    auth=Depends(verify_token)
):
    return onboard_account(db, gateway, request.user_id, request.email, request.country, settings.app_base_url)


@router.get("/stripe-connect/accounts/{account_id}")
def connect_account_status(account_id: str, gateway=Depends(get_stripe_gateway), auth=Depends(verify_token)):
    return account_status(gateway, account_id)
