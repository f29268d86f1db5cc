# backend/models/users.py
import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum
from database import Base
from utils.time_utils import utcnow


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


# Account record resolved from a bearer token; credentials are managed by the auth service
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, default=UserRole.CUSTOMER)
    created_at = Column(DateTime, default=utcnow, nullable=False)
