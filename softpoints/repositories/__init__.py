from .points_repository import PointsRepository
from .user_repository import UserRepository
from .withdrawal_repository import WithdrawalRepository
from .security_event_repository import SecurityEventRepository
