# Ontology Models
from app.models.ontology import (
    Member, Resource, Room, Item, Reservation, LedgerEntry, RewardConfig
)
from app.models.snapshots import ConfigHistory

__all__ = [
    'Member', 'Resource', 'Room', 'Item', 'Reservation',
    'LedgerEntry', 'RewardConfig', 'ConfigHistory'
]
