from fastapi import APIRouter

from .endpoints import health, inventory, reminders, sales

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(inventory.router)
router.include_router(sales.router)
router.include_router(reminders.router)
