"""
Course catalog and purchase records.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import Base, BaseModel, TimestampMixin, utc_now

if TYPE_CHECKING:
    from coursehub.models.user import User


class Course(BaseModel):
    """A course that can be purchased. Catalog management lives elsewhere."""

    __tablename__ = "courses"

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, title='{self.title}', price={self.price})>"


class CoursePurchase(Base, TimestampMixin):
    """
    Purchase entry for a user/course pair.

    Kept separately from enrollment so access can later be revoked
    without losing the purchase history.
    """

    __tablename__ = "course_purchases"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_purchase_user_course"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    # None means lifetime access
    access_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="purchases")
    course: Mapped["Course"] = relationship("Course")

    def __repr__(self) -> str:
        return f"<CoursePurchase(user_id={self.user_id}, course_id={self.course_id})>"
