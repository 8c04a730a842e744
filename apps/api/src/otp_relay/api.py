from fastapi import APIRouter

from otp_relay.modules.verification import router as verification_router

api_router = APIRouter()

api_router.include_router(verification_router, tags=["Verification"])
