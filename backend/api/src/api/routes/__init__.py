"""API routes package.

Routers are organized by audience:

- webhooks: Payment provider notifications (WATA, P2PKassa, PayID19, shared root)
- admin: Order registration, audit statistics, wallet balance

Webhook routes are mounted at the root; admin routes under /api.
"""

from api.routes.admin import router as admin_router
from api.routes.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "webhooks_router",
]
