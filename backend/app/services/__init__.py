# Business Services
from app.services.reservation_service import ReservationService
from app.services.ledger_service import LedgerService
from app.services.reward_config_service import RewardConfigService
from app.services.expiry_sweeper import ExpirySweeper

__all__ = [
    'ReservationService', 'LedgerService', 'RewardConfigService', 'ExpirySweeper'
]
