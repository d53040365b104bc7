from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from rangeserve.api.deps import get_stream_service
from rangeserve.core.errors import CapacityError, LocatorError
from rangeserve.services.response_assembler import ResponseKind
from rangeserve.services.stream_service import StreamService


router = APIRouter()


@router.get("/{identifier:path}")
@router.head("/{identifier:path}")
async def get_resource(
    identifier: str,
    request: Request,
    session: Optional[str] = Query(default=None),
    svc: StreamService = Depends(get_stream_service),
) -> Response:
    """
    Serve a resource under RESOURCE_ROOT with HTTP Range (bytes) support.
    """
    try:
        return await svc.handle(
            identifier,
            request.headers,
            method=request.method,
            client_session=session,
        )
    except LocatorError:
        # missing and forbidden look the same from outside
        raise HTTPException(status_code=404, detail="not found")
    except CapacityError:
        rejected = svc.assembler.assemble(ResponseKind.REJECTED)
        raise HTTPException(
            status_code=rejected.status_code,
            detail="too many concurrent streams",
            headers=rejected.headers,
        )
