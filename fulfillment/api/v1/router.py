from fastapi import APIRouter

from fulfillment.api.v1.endpoints import (
    warehouses,
    zones,
    availability,
    cart,
    enquiries,
    bids,
    jobs,
)


# Create main API router
api_router = APIRouter(prefix="/api")

# ==================== Warehouse directory ====================
api_router.include_router(
    warehouses.router,
    prefix="/warehouse",
)
api_router.include_router(
    zones.router,
    prefix="/zones",
)

# ==================== Serviceability ====================
api_router.include_router(
    availability.router,
    prefix="/product-availability",
)

# ==================== Cart & checkout ====================
api_router.include_router(
    cart.router,
    prefix="/cart",
)

# ==================== Enquiries & bids ====================
api_router.include_router(
    enquiries.router,
    prefix="/enquiries",
)
api_router.include_router(
    bids.router,
    prefix="/bids",
)

# ==================== Background jobs ====================
api_router.include_router(
    jobs.router,
    prefix="/jobs",
)
