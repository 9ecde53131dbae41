"""
Order validation for the order cache service.
"""

from .validator import OrderValidator, EMAIL_PATTERN

__all__ = ["OrderValidator", "EMAIL_PATTERN"]
