# File: app/api/v1/endpoints/promos.py

from fastapi import APIRouter, Depends
from supabase import Client

from app.api.deps import get_db
from app.models.schemas import PromoValidationRequest, PromoValidationResult
from app.services import promo_service

router = APIRouter()


@router.post("/validate", response_model=PromoValidationResult)
def validate_promo(request: PromoValidationRequest, db: Client = Depends(get_db)):
    """
    Relays to the validate_promo_code routine. Always 200; check ``valid``.
    """
    return promo_service.validate_promo_code(db, request.code, request.order_amount)
