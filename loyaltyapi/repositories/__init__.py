# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .user_repository import UserRepository
from .points_repository import PointsRepository
from .referral_repository import ReferralRepository
from .promo_repository import PromoRepository
from .task_repository import TaskRepository
from .subscription_repository import SubscriptionRepository
