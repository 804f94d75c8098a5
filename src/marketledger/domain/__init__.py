from .models import (
    MonthlyBucket,
    Product,
    ReportFilter,
    Sale,
    SaleLineItem,
    SalesReport,
    Setting,
    Totals,
)
from .errors import (
    AppError,
    EmptySaleError,
    InvalidProductError,
    MissingMarketNameError,
    NotFoundError,
    StorageUnavailableError,
    UnknownProductError,
    ValidationError,
)

__all__ = [
    "Product",
    "SaleLineItem",
    "Sale",
    "Setting",
    "Totals",
    "MonthlyBucket",
    "ReportFilter",
    "SalesReport",
    "AppError",
    "StorageUnavailableError",
    "ValidationError",
    "InvalidProductError",
    "EmptySaleError",
    "MissingMarketNameError",
    "NotFoundError",
    "UnknownProductError",
]
