"""Fix handlers, one per family of issue codes."""

from dealsync.fixes.handlers.base import FixHandler
from dealsync.fixes.handlers.deal_value import DealValueFixHandler
from dealsync.fixes.handlers.title_format import TitleFormatFixHandler

__all__ = ["FixHandler", "TitleFormatFixHandler", "DealValueFixHandler"]
