from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import generate_id


class Sale(db.Model):
    """A completed sale at a branch. Free-tier tenants are capped per calendar day."""
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)

    total_amount = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    # cash, mpesa, credit
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    debtor_id = db.Column(db.String(36), db.ForeignKey("debtors.id"), nullable=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    lines = db.relationship("SaleLine", backref="sale", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "branchId": self.branch_id,
            "totalAmount": self.total_amount,
            "paymentMethod": self.payment_method,
            "debtorId": self.debtor_id,
            "createdBy": self.created_by,
            "createdAt": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "lineTotal": round(self.quantity * self.unit_price, 2),
        }


class Debtor(db.Model):
    """Customer buying on credit."""
    __tablename__ = "debtors"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    amount_owed = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "amountOwed": self.amount_owed,
            "createdAt": to_utc_z(self.created_at),
        }
