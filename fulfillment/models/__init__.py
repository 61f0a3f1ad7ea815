"""SQLAlchemy models; importing this package registers every table on Base.metadata."""
from fulfillment.models.warehouse import Warehouse, WarehousePincode, WarehouseType
from fulfillment.models.serviceability import DeliveryZone, ZonePincode, WarehouseZone
from fulfillment.models.product import Product, ProductVariant, DeliveryType
from fulfillment.models.inventory import (
    ProductWarehouseStock,
    StockReservation,
    StockMovement,
    ReferenceType,
    ReservationStatus,
    MovementType,
)
from fulfillment.models.cart import CartItem
from fulfillment.models.bid import (
    ProductEnquiry,
    EnquiryBid,
    BidProduct,
    LockedBid,
    EnquiryStatus,
    BidType,
    BidStatus,
    LockedBidStatus,
)

__all__ = [
    "Warehouse",
    "WarehousePincode",
    "WarehouseType",
    "DeliveryZone",
    "ZonePincode",
    "WarehouseZone",
    "Product",
    "ProductVariant",
    "DeliveryType",
    "ProductWarehouseStock",
    "StockReservation",
    "StockMovement",
    "ReferenceType",
    "ReservationStatus",
    "MovementType",
    "CartItem",
    "ProductEnquiry",
    "EnquiryBid",
    "BidProduct",
    "LockedBid",
    "EnquiryStatus",
    "BidType",
    "BidStatus",
    "LockedBidStatus",
]
