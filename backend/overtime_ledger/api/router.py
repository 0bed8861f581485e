from fastapi import APIRouter

from overtime_ledger.api.leave import leave_router
from overtime_ledger.api.overtime import overtime_router
from overtime_ledger.api.recaps import recaps_router, toil_router
from overtime_ledger.api.system import system_router

api_router = APIRouter()
api_router.include_router(recaps_router)
api_router.include_router(overtime_router)
api_router.include_router(toil_router)
api_router.include_router(leave_router)
api_router.include_router(system_router)
