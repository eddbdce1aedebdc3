# API Routers
from app.routers import rooms, reservations, services

__all__ = ['rooms', 'reservations', 'services']
