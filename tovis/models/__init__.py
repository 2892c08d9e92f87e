from .tables import Base, BookingHolds, Bookings, CalendarBlocks, Professionals, Services

__all__ = ["Base", "BookingHolds", "Bookings", "CalendarBlocks", "Professionals", "Services"]
