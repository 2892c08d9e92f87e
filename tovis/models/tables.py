# tovis/models/tables.py

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Professionals(Base):
    __tablename__ = 'professionals'

    user_id = Column(Integer, nullable=False, unique=True)
    display_name = Column(Text)
    time_zone = Column(Text, nullable=False, server_default=text("'UTC'"))
    working_hours = Column(Text, nullable=False, server_default=text("'{}'"))
    buffer_minutes = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    services = relationship('Services', back_populates='professional')
    calendar_blocks = relationship('CalendarBlocks', back_populates='professional')
    bookings = relationship('Bookings', back_populates='professional')
    holds = relationship('BookingHolds', back_populates='professional')


class Services(Base):
    __tablename__ = 'services'

    professional_id = Column(ForeignKey('professionals.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration_min = Column(Integer, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    professional = relationship('Professionals', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class CalendarBlocks(Base):
    __tablename__ = 'calendar_blocks'
    __table_args__ = (
        CheckConstraint('ends_at > starts_at', name='ck_calendar_blocks_range'),
        Index('ix_calendar_blocks_pro_range', 'professional_id', 'starts_at', 'ends_at'),
    )

    professional_id = Column(ForeignKey('professionals.id', ondelete='CASCADE'), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    id = Column(Integer, primary_key=True)
    note = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    professional = relationship('Professionals', back_populates='calendar_blocks')


_ACTIVE_SESSION = text('started_at IS NOT NULL AND finished_at IS NULL')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        CheckConstraint('duration_minutes_snapshot > 0', name='ck_bookings_duration'),
        Index('ix_bookings_pro_scheduled', 'professional_id', 'scheduled_for'),
        # At most one in-progress session per professional
        Index(
            'uq_bookings_one_active_per_pro',
            'professional_id',
            unique=True,
            sqlite_where=_ACTIVE_SESSION,
            postgresql_where=_ACTIVE_SESSION,
        ),
    )

    professional_id = Column(ForeignKey('professionals.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(Integer, nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    duration_minutes_snapshot = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, server_default=text('0'))
    status = Column(Text, nullable=False, server_default=text("'PENDING'"))
    id = Column(Integer, primary_key=True)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    cancel_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    professional = relationship('Professionals', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')


class BookingHolds(Base):
    __tablename__ = 'booking_holds'
    __table_args__ = (
        Index('ix_booking_holds_pro_expires', 'professional_id', 'expires_at'),
    )

    professional_id = Column(ForeignKey('professionals.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(Integer, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, server_default=text('0'))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    professional = relationship('Professionals', back_populates='holds')
