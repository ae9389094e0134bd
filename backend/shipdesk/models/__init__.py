from shipdesk.db.base import Base  # noqa: F401
from shipdesk.models.shipment import ShipmentDocument  # noqa: F401
