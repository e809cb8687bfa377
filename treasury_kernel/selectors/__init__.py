"""Read-only selectors for the treasury kernel."""

from treasury_kernel.selectors.base import BaseSelector
from treasury_kernel.selectors.fund_selector import FundSelector
from treasury_kernel.selectors.requisition_selector import RequisitionSelector

__all__ = [
    "BaseSelector",
    "FundSelector",
    "RequisitionSelector",
]
