from loyaltyapi.logging_config import INTEGRITY_LOGGERS, build_logging_config


class TestLoggingConfig:
    """로깅 설정 테스트"""

    def test_integrity_loggers_stay_at_info_when_level_is_raised(self):
        config = build_logging_config("error")

        assert config["loggers"]["loyaltyapi"]["level"] == "ERROR"
        for name in INTEGRITY_LOGGERS:
            assert config["loggers"][name]["level"] == "INFO"

    def test_integrity_loggers_follow_lower_levels(self):
        config = build_logging_config("DEBUG")

        for name in INTEGRITY_LOGGERS:
            assert config["loggers"][name]["level"] == "DEBUG"
