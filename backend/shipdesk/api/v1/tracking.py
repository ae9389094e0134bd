from fastapi import APIRouter, Depends, Request

from shipdesk.core.errors import TrackingNotFoundError
from shipdesk.schemas.error import ErrorResponse
from shipdesk.schemas.tracking import TrackingView
from shipdesk.services import tracking as tracking_service
from shipdesk.services.backend_mode import BackendMode

router = APIRouter(prefix="/track", tags=["tracking"])


def get_backend_mode(request: Request) -> BackendMode:
    return request.app.state.backend_mode


@router.get(
    "/{tracking_no}",
    response_model=TrackingView,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)
async def track_shipment(tracking_no: str, mode: BackendMode = Depends(get_backend_mode)) -> TrackingView:
    shipment = await tracking_service.lookup(mode, tracking_no)
    if shipment is None:
        raise TrackingNotFoundError(tracking_no.strip())
    return tracking_service.build_tracking_view(shipment)
