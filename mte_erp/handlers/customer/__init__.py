from .handler import CustomerHandler

__all__ = ["CustomerHandler"]
