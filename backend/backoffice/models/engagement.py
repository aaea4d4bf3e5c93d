from __future__ import annotations

import sqlalchemy as sa

from ..enums import (
    AnnouncementType,
    DiscountType,
    FeedbackCategory,
    FeedbackStatus,
    LoyaltyType,
    PromotionStatus,
)
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class Announcement(Model):
    """Team board post for one branch."""
    __tablename__ = "announcements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    author_id = sa.Column(sa.Integer, sa.ForeignKey("subjects.id"), nullable=True)

    title = sa.Column(sa.String(200), nullable=False)
    content = sa.Column(sa.Text, nullable=False)
    type = enum_column(AnnouncementType, nullable=False, default=AnnouncementType.GENERAL)
    author_name = sa.Column(sa.String(120), nullable=True)
    date = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())
    attachments = sa.Column(sa.JSON, nullable=False, default=list)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "author_id": self.author_id,
            "title": self.title,
            "content": self.content,
            "type": enum_value(self.type),
            "author_name": self.author_name,
            "date": to_utc_z(self.date),
            "attachments": list(self.attachments or []),
            "created_at": to_utc_z(self.created_at),
        }


class CustomerFeedback(Model):
    """
    Rating left by a customer.

    Starts pending; staff mark it addressed once they have responded.
    """
    __tablename__ = "customer_feedback"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = sa.Column(sa.Integer, sa.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = sa.Column(sa.Integer, sa.ForeignKey("orders.id"), nullable=True)

    rating = sa.Column(sa.Integer, nullable=False)
    category = enum_column(FeedbackCategory, nullable=False, default=FeedbackCategory.OVERALL)
    message = sa.Column(sa.Text, nullable=True)
    date = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())
    status = enum_column(FeedbackStatus, nullable=False, default=FeedbackStatus.PENDING)
    response = sa.Column(sa.Text, nullable=True)
    response_date = sa.Column(sa.DateTime, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "category": enum_value(self.category),
            "message": self.message,
            "date": to_utc_z(self.date),
            "status": enum_value(self.status),
            "response": self.response,
            "response_date": to_utc_z(self.response_date),
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyTransaction(Model):
    """
    Append-only loyalty points entry.

    Each row moves the customer's loyalty_points by +points (earn) or
    -points (redeem) when it is written.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = sa.Column(sa.Integer, sa.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = sa.Column(sa.Integer, sa.ForeignKey("orders.id"), nullable=True)

    type = enum_column(LoyaltyType, nullable=False)
    points = sa.Column(sa.Integer, nullable=False)
    resulting_points = sa.Column(sa.Integer, nullable=False, default=0)
    description = sa.Column(sa.String(255), nullable=False, default="")
    date = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    @property
    def signed_points(self) -> int:
        return self.points if self.type == LoyaltyType.EARN else -self.points

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "type": enum_value(self.type),
            "points": self.points,
            "resulting_points": self.resulting_points,
            "description": self.description,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }


class Promotion(Model):
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(120), nullable=False)
    description = sa.Column(sa.Text, nullable=False, default="")
    discount_type = enum_column(DiscountType, nullable=False)
    discount_value = sa.Column(sa.Integer, nullable=False)  # percent, or minor units when fixed
    applicable_segments = sa.Column(sa.JSON, nullable=False, default=list)
    applicable_products = sa.Column(sa.JSON, nullable=False, default=list)
    start_date = sa.Column(sa.DateTime, nullable=False)
    end_date = sa.Column(sa.DateTime, nullable=False)
    status = enum_column(PromotionStatus, nullable=False, default=PromotionStatus.INACTIVE)
    usage_count = sa.Column(sa.Integer, nullable=False, default=0)
    max_usage = sa.Column(sa.Integer, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "discount_type": enum_value(self.discount_type),
            "discount_value": self.discount_value,
            "applicable_segments": list(self.applicable_segments or []),
            "applicable_products": list(self.applicable_products or []),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "status": enum_value(self.status),
            "usage_count": self.usage_count,
            "max_usage": self.max_usage,
            "created_at": to_utc_z(self.created_at),
        }
