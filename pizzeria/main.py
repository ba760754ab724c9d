"""
FastAPI application for restaurant ordering: catalog, half-and-half
combination, cart composition, checkout, and orders.
"""
import time
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pizzeria import pricing
from pizzeria.cart_service import CartService
from pizzeria.catalog import CatalogStore
from pizzeria.checkout_service import CheckoutService
from pizzeria.collaborators import RedisLoyaltyTracker, RedisOrderRepository
from pizzeria.combiner import HalfAndHalfCombiner
from pizzeria.config import Config
from pizzeria.exceptions import (
    ItemNotFoundError,
    LimitExceededError,
    LineNotFoundError,
    OrderNotFoundError,
    PersistenceFailure,
    RedisConnectionError,
    SelectionClosedError,
    ValidationError,
)
from pizzeria.middleware import RequestLoggingMiddleware
from pizzeria.models import (
    AddLineRequest,
    CartResponse,
    CatalogItem,
    CheckoutRequest,
    CombinationPreviewRequest,
    Coupon,
    EditLineRequest,
    FlavorOption,
    GroupView,
    OrderRecord,
    StatusUpdateRequest,
)
from pizzeria.order_service import OrderService
from pizzeria.redis_client import RedisClient, get_redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if Config.CATALOG_SEED_PATH:
        CatalogStore(get_redis_client()).seed_from_file(Config.CATALOG_SEED_PATH)
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Restaurant Ordering API",
    description="Order composition and pricing with a Redis-backed cart",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


# Dependencies

def get_redis() -> RedisClient:
    return get_redis_client()


def get_catalog_store(redis: RedisClient = Depends(get_redis)) -> CatalogStore:
    return CatalogStore(redis)


def get_cart_service(redis: RedisClient = Depends(get_redis)) -> CartService:
    return CartService(redis)


def get_order_service(redis: RedisClient = Depends(get_redis)) -> OrderService:
    return OrderService(RedisOrderRepository(redis), loyalty=RedisLoyaltyTracker(redis))


def get_checkout_service(
    cart_service: CartService = Depends(get_cart_service),
    order_service: OrderService = Depends(get_order_service),
) -> CheckoutService:
    return CheckoutService(cart_service, order_service)


def cart_id_header(cart_id: str = Header(..., alias="X-Cart-ID", description="Cart identifier")) -> str:
    if not cart_id or not cart_id.strip():
        raise HTTPException(status_code=400, detail="Cart ID is required")
    return cart_id.strip()


def is_guest_header(user_id: Optional[str] = Header(None, alias="X-User-ID", description="User identifier")) -> bool:
    return user_id is None


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    Always returns HTTP 200 if the application is running; reports Redis separately.
    """
    redis_status = "healthy"
    redis_latency_ms = None

    try:
        redis_client = get_redis()
        ping_start = time.time()
        ping_result = redis_client.ping()
        redis_latency_ms = round((time.time() - ping_start) * 1000, 2)

        if not ping_result:
            redis_status = "unhealthy"
    except RedisConnectionError:
        redis_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "ordering-api",
            "redis": {
                "status": redis_status,
                "latency_ms": redis_latency_ms
            },
            "timestamp": time.time()
        }
    )


# Catalog endpoints
@app.get("/catalog/items", response_model=List[CatalogItem])
async def list_items(catalog_store: CatalogStore = Depends(get_catalog_store)):
    """Available catalog items"""
    return [item for item in catalog_store.get_all_items() if item.available]


@app.get("/catalog/items/{item_id}/groups", response_model=List[GroupView])
async def item_groups(item_id: str, catalog_store: CatalogStore = Depends(get_catalog_store)):
    """Variation groups of an item with their selectable variations and initial status"""
    catalog = catalog_store.load()
    item = catalog.available_item(item_id)
    if item is None:
        raise ItemNotFoundError(item_id)
    return [
        GroupView(
            group=group,
            variations=catalog.variations_for_group(group, item),
            status=catalog.group_status(group, None),
            message=catalog.message(group, None),
        )
        for group in item.variation_groups
    ]


@app.get("/combinations/options", response_model=List[FlavorOption])
async def combination_options(catalog_store: CatalogStore = Depends(get_catalog_store)):
    """Flavors that can be combined into a half-and-half pizza"""
    return HalfAndHalfCombiner(catalog_store.load()).options()


@app.post("/combinations/preview", response_model=dict)
async def combination_preview(
    request: CombinationPreviewRequest,
    catalog_store: CatalogStore = Depends(get_catalog_store)
):
    """Price (and, with a second flavor, the synthesized item) of a half-and-half pizza"""
    catalog = catalog_store.load()
    combiner = HalfAndHalfCombiner(catalog)
    item = combiner.flavor(request.item_id)
    price = combiner.preview_price(item, request.flavor2_id)
    combined = combiner.combine(item, request.flavor2_id) if request.flavor2_id else None
    return {
        "price": str(pricing.to_money(price)),
        "item": combined.model_dump(mode="json") if combined else None,
    }


# Cart endpoints
@app.get("/cart", response_model=CartResponse)
async def get_cart(
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """
    Get cart contents.
    Saved lines are re-attached to the current catalog; stale ones are dropped.
    """
    return cart_service.get_cart(cart_id, is_guest)


@app.post("/cart/lines", response_model=CartResponse)
async def add_cart_line(
    request: AddLineRequest,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """Configure an item (optionally half-and-half) and add it to the cart"""
    return cart_service.add_line(cart_id, request, is_guest)


@app.put("/cart/lines/{index}", response_model=CartResponse)
async def edit_cart_line(
    index: int,
    request: EditLineRequest,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """Replace the selections and border of an existing line"""
    return cart_service.edit_line(cart_id, index, request, is_guest)


@app.post("/cart/items/{item_id}/increment", response_model=CartResponse)
async def increment_item(
    item_id: str,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    return cart_service.increment(cart_id, item_id, is_guest)


@app.post("/cart/items/{item_id}/decrement", response_model=CartResponse)
async def decrement_item(
    item_id: str,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    return cart_service.decrement(cart_id, item_id, is_guest)


@app.delete("/cart/items/{item_id}", response_model=CartResponse)
async def remove_item(
    item_id: str,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """Remove item from cart"""
    return cart_service.remove_line(cart_id, item_id, is_guest)


@app.put("/cart/coupon", response_model=CartResponse)
async def apply_coupon(
    coupon: Coupon,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """Apply a coupon descriptor already validated by the coupon service"""
    return cart_service.apply_coupon(cart_id, coupon, is_guest)


@app.delete("/cart/coupon", response_model=CartResponse)
async def drop_coupon(
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    return cart_service.apply_coupon(cart_id, None, is_guest)


@app.delete("/cart", response_model=CartResponse)
async def clear_cart(
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    cart_service: CartService = Depends(get_cart_service)
):
    """Clear all lines and the coupon"""
    return cart_service.clear_cart(cart_id, is_guest)


# Checkout / orders
@app.post("/checkout", response_model=OrderRecord, status_code=201)
async def checkout(
    request: CheckoutRequest,
    cart_id: str = Depends(cart_id_header),
    is_guest: bool = Depends(is_guest_header),
    checkout_service: CheckoutService = Depends(get_checkout_service)
):
    """
    Create an order from the cart.
    Prices are recomputed server-side; the cart is cleared only after the order is saved.
    """
    return checkout_service.start_checkout(cart_id, request, is_guest)


@app.get("/orders/{order_id}", response_model=OrderRecord)
async def get_order(order_id: str, order_service: OrderService = Depends(get_order_service)):
    return order_service.get_order(order_id)


@app.get("/orders", response_model=List[OrderRecord])
async def orders_by_phone(
    phone: str = Query(..., min_length=1),
    order_service: OrderService = Depends(get_order_service)
):
    """Orders of a customer, newest first"""
    digits = "".join(ch for ch in phone if ch.isdigit())
    return order_service.orders_for_phone(digits)


@app.patch("/orders/{order_id}/status", response_model=OrderRecord)
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    order_service: OrderService = Depends(get_order_service)
):
    return order_service.update_status(order_id, request.status, request.payment_status)


# Error handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "message": str(exc), "details": exc.messages}
    )


@app.exception_handler(LimitExceededError)
async def limit_error_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Limit exceeded", "message": str(exc)}
    )


@app.exception_handler(SelectionClosedError)
async def selection_closed_handler(request, exc):
    return JSONResponse(
        status_code=409,
        content={"error": "Selection closed", "message": str(exc)}
    )


@app.exception_handler(ItemNotFoundError)
@app.exception_handler(LineNotFoundError)
@app.exception_handler(OrderNotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "message": str(exc)}
    )


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"error": "Order not saved", "message": "Could not save the order, please try again", "retryable": True}
    )


@app.exception_handler(RedisConnectionError)
async def redis_error_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": "Redis connection failed"}
    )


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
