from .currency import CurrencyParser
from .export import ExportFormat, ExportService

__all__ = [
    "CurrencyParser",
    "ExportFormat",
    "ExportService",
]
