"""SQLAlchemy models for HMOs, their users and hospitals."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from common.db import Base
from common.enums import UserRole

# HMO directory: which users administer which HMO
hmo_administrators = Table(
    "hmo_administrators",
    Base.metadata,
    Column("hmo_id", Integer, ForeignKey("hmos.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)


class Hmo(Base):
    """Health Maintenance Organization, the tenant owning hospitals and claims."""

    __tablename__ = "hmos"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    administrators = relationship("User", secondary=hmo_administrators, back_populates="administered_hmos")
    members = relationship("User", back_populates="hmo", foreign_keys="User.hmo_id")
    hospitals = relationship("Hospital", back_populates="hmo")
    provider_claims = relationship("ProviderClaim", back_populates="hmo")


class User(Base):
    """Platform user: HMO staff, insured member or provider staff."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.MEMBER, nullable=False)
    hmo_id = Column(Integer, ForeignKey("hmos.id"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    hmo = relationship("Hmo", back_populates="members", foreign_keys=[hmo_id])
    administered_hmos = relationship("Hmo", secondary=hmo_administrators, back_populates="administrators")
    claims = relationship("Claim", back_populates="member")
    notes = relationship("Note", back_populates="author")


class Hospital(Base):
    """Healthcare provider facility registered with an HMO."""

    __tablename__ = "hospitals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    hmo_id = Column(Integer, ForeignKey("hmos.id"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    hmo = relationship("Hmo", back_populates="hospitals")
    claims = relationship("Claim", back_populates="hospital")
    provider_claims = relationship("ProviderClaim", back_populates="hospital")
