# Actor dependencies
from app.security.actor import get_actor, require_admin

__all__ = ['get_actor', 'require_admin']
