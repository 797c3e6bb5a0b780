# router bundle for main.py
from .health import router as health
from .purchase import router as purchase

__all__ = ["health", "purchase"]
