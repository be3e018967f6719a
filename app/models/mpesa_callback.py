"""Raw M-Pesa callback log."""
from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class MpesaCallback(Base):
    """Append-only copy of every callback correlated to a payment."""

    __tablename__ = "mpesa_callbacks"

    payment_id: Mapped[int] = mapped_column(ForeignKey("payments.id"), nullable=False, index=True)
    callback_data: Mapped[dict] = mapped_column(JSON, nullable=False)

    payment = relationship("Payment", back_populates="callbacks")
