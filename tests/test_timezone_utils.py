from datetime import date, datetime, timezone
from unittest.mock import patch

from loyaltyapi.utils.timezone_utils import ensure_utc, get_reward_date


class TestRewardDate:
    def test_utc_day_by_default(self):
        now = datetime(2024, 3, 4, 23, 30, tzinfo=timezone.utc)

        assert get_reward_date(now) == date(2024, 3, 4)

    def test_offset_moves_day_boundary(self):
        """UTC+9 기준이면 UTC 23:30은 다음 날"""
        now = datetime(2024, 3, 4, 23, 30, tzinfo=timezone.utc)

        with patch("loyaltyapi.utils.timezone_utils.settings") as mock_settings:
            mock_settings.REWARD_DAY_UTC_OFFSET_HOURS = 9
            assert get_reward_date(now) == date(2024, 3, 5)

    def test_naive_datetime_is_treated_as_utc(self):
        naive = datetime(2024, 3, 4, 12, 0)

        assert ensure_utc(naive) == datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
