from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, ForeignKey, Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class PropertyUser(Base):
    """Association of a user with a property (and, for tenants, a unit)."""
    __tablename__ = "property_users"
    __table_args__ = (
        UniqueConstraint("user_id", "property_id", "unit_id", name="uq_property_users_user_property_unit"),
        # NULL unit ids never collide in a plain unique constraint
        Index(
            "uq_property_users_user_property_no_unit",
            "user_id",
            "property_id",
            unique=True,
            sqlite_where=text("unit_id IS NULL"),
            postgresql_where=text("unit_id IS NULL"),
        ),
        Index("ix_property_users_user_property", "user_id", "property_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    invited_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def roles(self):
        return sorted(r.role for r in self.role_rows)

    def has_role(self, role: str) -> bool:
        return any(r.role == role for r in self.role_rows)

    def add_role(self, role: str) -> None:
        if not self.has_role(role):
            self.role_rows.append(PropertyUserRole(role=role))

    def remove_role(self, role: str) -> None:
        for row in list(self.role_rows):
            if row.role == role:
                self.role_rows.remove(row)

    # declared after the methods above: the name shadows the builtin in the class body
    user = relationship("User", foreign_keys=[user_id])
    property = relationship("Property")
    unit = relationship("Unit")
    role_rows = relationship(
        "PropertyUserRole",
        back_populates="property_user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PropertyUserRole(Base):
    __tablename__ = "property_user_roles"
    __table_args__ = (
        UniqueConstraint("property_user_id", "role", name="uq_property_user_roles_role"),
        Index("ix_property_user_roles_role", "role", "property_user_id"),
    )

    id = Column(Integer, primary_key=True)
    property_user_id = Column(Integer, ForeignKey("property_users.id"), nullable=False, index=True)
    # landlord / propertymanager / tenant / admin_access
    role = Column(String, nullable=False)

    property_user = relationship("PropertyUser", back_populates="role_rows")
