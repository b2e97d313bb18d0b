from .handler import SupplierHandler

__all__ = ["SupplierHandler"]
