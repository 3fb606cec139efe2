"""User model definitions."""

import enum

from sqlalchemy import Column, Enum, Integer, String
from agenda.database import Base


class Role(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"


class User(Base):
    """Represents an application user, either a client or a service provider."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    phone = Column(String)
    specialty = Column(String)
    role = Column(
        Enum(Role, name="user_role", native_enum=False, values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
    )
