"""Main v1 router aggregator"""
from fastapi import APIRouter

from app.api.v1 import (activity, admin, balances, dashboard, expenses, groups,
                        messages, users)

# Create v1 router
api_router = APIRouter()

# Include all v1 routers
api_router.include_router(users.router)
api_router.include_router(groups.router)
api_router.include_router(expenses.router)
api_router.include_router(balances.router)
api_router.include_router(dashboard.router)
api_router.include_router(activity.router)
api_router.include_router(messages.router)
api_router.include_router(admin.router)
