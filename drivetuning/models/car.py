"""
Cars and their log entries.
A car belongs to a user; every modification hangs off a LogEntry of a car.
state_id is the German federal state (e.g. BY, NW) used for regional rules.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from drivetuning.database import Base


class Car(Base):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer)
    state_id = Column(String(10))
    created_at = Column(DateTime)

    log_entries = relationship("LogEntry", back_populates="car")

    def __repr__(self):
        return f"<Car {self.id} {self.make} {self.model} state={self.state_id}>"


class LogEntry(Base):
    __tablename__ = "log_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id"), nullable=False, index=True)
    entry_type = Column(String(30), nullable=False, default="MODIFICATION")  # MODIFICATION | MAINTENANCE | TRACK_DAY | DYNO
    title = Column(String(200))
    occurred_at = Column(DateTime)

    car = relationship("Car", back_populates="log_entries")
    modifications = relationship("Modification", back_populates="log_entry")

    def __repr__(self):
        return f"<LogEntry {self.id} car={self.car_id} type={self.entry_type}>"
