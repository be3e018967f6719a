"""Payment model definitions."""
import enum
from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum as SqlEnum, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class PaymentStatus(str, enum.Enum):
    """Lifecycle of an STK-push payment. Everything but PENDING is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class Payment(Base):
    """One attempted M-Pesa transfer initiated through an STK push."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_payments_min_amount"),
        Index("ix_payments_status", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SqlEnum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    merchant_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    checkout_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    mpesa_receipt_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    result_code: Mapped[int | None] = mapped_column(nullable=True)
    result_desc: Mapped[str | None] = mapped_column(String(255), nullable=True)

    callbacks = relationship("MpesaCallback", back_populates="payment", order_by="MpesaCallback.id")

    @property
    def account_reference(self) -> str:
        return f"Payment-{self.id}"

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.status.value}>"
