# API Routers
from app.routers import reservations, resources, rewards, admin

__all__ = ['reservations', 'resources', 'rewards', 'admin']
