from fastapi import APIRouter

from procurement.api.v1 import validations

api_router = APIRouter()

api_router.include_router(validations.router, prefix="/validations", tags=["validations"])
