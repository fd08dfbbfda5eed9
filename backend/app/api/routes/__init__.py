# API Routes Module
from app.api.routes import (
    billing,
    preferences,
    webhooks,
)

__all__ = [
    "billing",
    "preferences",
    "webhooks",
]
