from fastapi import APIRouter
from bookon.api.v1.routes.auth import router as auth_router
from bookon.api.v1.routes.bookings import router as bookings_router
from bookon.api.v1.routes.cancellations import router as cancellations_router
from bookon.api.v1.routes.wallet import router as wallet_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(bookings_router)
api_router.include_router(cancellations_router)
api_router.include_router(wallet_router)
