from pydantic import BaseModel

PLACEHOLDER = "—"


class TrackingContact(BaseModel):
    name: str = PLACEHOLDER
    email: str = PLACEHOLDER
    phone: str = PLACEHOLDER
    street: str = PLACEHOLDER
    locality: str = PLACEHOLDER


class TrackingView(BaseModel):
    tracking_no: str
    route: str
    status: str
    last_updated: str
    status_date: str
    status_time: str
    location: str
    notes: str
    cargo_type: str
    carrier_ref: str
    departure_date: str
    departure_time: str
    comments: str
    featured_image: str | None = None
    sender: TrackingContact
    receiver: TrackingContact
