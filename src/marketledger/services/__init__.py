from .catalog_service import CatalogService
from .sales_service import SalesService
from .reporting_service import ReportingService
from .settings_service import SettingsService

__all__ = [
    "CatalogService",
    "SalesService",
    "ReportingService",
    "SettingsService",
]
