from .user import User, UserCreate
from .points import (
    PointsBalanceResponse,
    PointsMutationResponse,
    PointsTransactionEntry,
)
from .audit import PointsIssueReport, RepairAllResponse, RepairUserResponse
