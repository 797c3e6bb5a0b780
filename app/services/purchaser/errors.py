# app/services/purchaser/errors.py


class PurchaseError(RuntimeError):
    """Base class for failures inside the browser purchase flow."""


class ElementNotFound(PurchaseError):

    def __init__(self, what: str, selectors=()):
        tried = f" (tried: {', '.join(selectors)})" if selectors else ""
        super().__init__(f"{what} not found{tried}")
        self.what = what
        self.selectors = tuple(selectors)


class PurchaseStepError(PurchaseError):

    def __init__(self, step: str, retries: int, last_error: str):
        super().__init__(
            f"Failed to complete step {step} after {retries} retries: {last_error}")
        self.step = step
        self.retries = retries
        self.last_error = last_error


class CaptchaError(PurchaseError):
    pass
