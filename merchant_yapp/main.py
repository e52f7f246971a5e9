import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from merchant_yapp import models  # noqa: F401  registers tables
from merchant_yapp.bridge import ApplyStatus
from merchant_yapp.config import settings
from merchant_yapp.database import Base, engine
from merchant_yapp.messages import parse_webhook_params
from merchant_yapp.routes import apply_event, get_store, router
from merchant_yapp.store import OrderStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Merchant Yapp Checkout")

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.get("/callback")
def payment_callback(request: Request, store: OrderStore = Depends(get_store)):
    """Webhook-style completion: ``txhash``/``orderid``/``chainid`` in the query."""
    event = parse_webhook_params(request.query_params)
    if event is None:
        return {"status": "ignored"}

    result = apply_event(request, event, store)
    if result.status is ApplyStatus.CONFLICT:
        return JSONResponse(
            status_code=409,
            content={"status": result.status.value, "detail": "Order already paid by another transaction"},
        )
    return RedirectResponse(result.confirmation_url, status_code=303)
