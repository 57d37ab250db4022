"""Store models read by the sales time-series report: users, groups, memberships and sales."""

import datetime
from typing import List

from sqlalchemy import Column, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ...core.database import Base, UtcDateTime

# Membership relation between users and groups
user_groups = Table(
    "user_groups",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(100))

    groups: Mapped[List["Group"]] = relationship(secondary=user_groups, back_populates="users")
    sales: Mapped[List["Sale"]] = relationship(back_populates="user", cascade="all, delete-orphan")

    def __str__(self):
        return f"{self.name} ({self.role})"


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))

    users: Mapped[List[User]] = relationship(secondary=user_groups, back_populates="groups")

    def __str__(self):
        return self.name


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    # Minor currency units
    amount: Mapped[int] = mapped_column(Integer)
    date: Mapped[datetime.datetime] = mapped_column(UtcDateTime(), index=True)

    user: Mapped[User] = relationship(back_populates="sales")

    def __str__(self):
        return f"Sale {self.id}: {self.amount} by user {self.user_id} at {self.date}"
