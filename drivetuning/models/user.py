"""
Users table — the minimal identity record joined into admin listings.
Accounts and sessions themselves are managed by the upstream auth service.
"""

from sqlalchemy import Column, Integer, String, DateTime
from drivetuning.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200))
    email = Column(String(255), unique=True, index=True)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<User {self.id} email={self.email}>"
