# app/api/__init__.py
from fastapi import APIRouter

from app.api.routers import carts, checkout, health, orders

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(carts.router)
api_router.include_router(checkout.router)
api_router.include_router(orders.router)
