"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from classledger.api.v1.endpoints import enrollments, payments, attendance, finance

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollments"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(finance.router, prefix="/finance", tags=["Finance"])
