from fastapi import APIRouter
from rangeserve.api.v1 import diagnostics

router = APIRouter()
router.include_router(diagnostics.router, prefix="/diagnostics", tags=["diagnostics"])
