from .user import User
from .points import PointsTransactionEntry, LedgerAppendResult
from .rewards import RewardResult, Awarded, Skipped, Failed, NotAuthenticated
from .withdrawal import WithdrawalRequestCreate, WithdrawalResponse
from .fraud import FraudRiskAssessment, RiskContext, RiskLevel
