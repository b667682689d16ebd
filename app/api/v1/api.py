from fastapi import APIRouter
from app.api.v1.endpoints import auth, bookings, connect, hosts, integrations, itinerary, promos, roles

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(roles.router, prefix="/roles", tags=["Roles"])
api_router.include_router(itinerary.router, prefix="/itinerary", tags=["Itinerary"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings & Payments"])
api_router.include_router(connect.router, prefix="/connect", tags=["Stripe Connect"])
api_router.include_router(promos.router, prefix="/promos", tags=["Promo Codes"])
api_router.include_router(integrations.router, prefix="/integrations", tags=["Integrations"])
api_router.include_router(hosts.router, prefix="/hosts", tags=["Hosts"])
