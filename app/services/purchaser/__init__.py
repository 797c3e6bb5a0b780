# browser purchase flow for the Express Pass site
from .errors import CaptchaError, ElementNotFound, PurchaseError, PurchaseStepError
from .flow import build_steps, purchase_ticket, run_steps

__all__ = [
    "purchase_ticket", "build_steps", "run_steps",
    "PurchaseError", "PurchaseStepError", "CaptchaError", "ElementNotFound",
]
