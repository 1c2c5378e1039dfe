from fastapi import APIRouter
from clinic_rx.api.v1.prescribing import routes as prescribing

api_router = APIRouter()
api_router.include_router(prescribing.router, prefix="/prescribing", tags=["prescribing"])
