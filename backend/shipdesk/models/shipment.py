from typing import Any

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from shipdesk.db.base import Base


class ShipmentDocument(Base):
    """A shipment document in the remote store.

    The full camelCase document lives in ``data``; ``tracking_no`` and
    ``updated_at`` are copied out of it for lookups and ordering.
    """

    __tablename__ = "shipment_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tracking_no: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def to_document(self) -> dict[str, Any]:
        return {**self.data, "id": self.id}
