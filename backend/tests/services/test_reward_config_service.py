"""
奖励配置服务测试
"""
import pytest

from app.domain.actor import Actor
from app.domain.errors import ErrorKind
from app.domain.tiers import RewardConfigUpdate
from app.models.events import EventType
from app.models.ontology import LedgerCategory, RewardConfig
from app.services.ledger_service import LedgerService
from app.services.reward_config_service import RewardConfigService


@pytest.fixture
def service(db_session, clock, published):
    return RewardConfigService(db_session, event_publisher=published.publish, clock=clock)


@pytest.fixture
def admin(admin_member):
    return Actor(member_id=admin_member.id, is_admin=True)


class TestSnapshot:

    def test_seeds_default(self, service, db_session):
        config = service.snapshot()
        assert config.version == 1
        assert config.tier_names == ["Bronze", "Silver", "Gold", "Platinum"]
        assert config.point_values["referral"] == 50
        assert config.expiry.enabled
        assert db_session.query(RewardConfig).count() == 1
        assert len(service.get_history()) == 1

    def test_seed_only_once(self, service, db_session):
        service.snapshot()
        service.snapshot()
        assert db_session.query(RewardConfig).count() == 1


class TestUpdateConfig:

    def test_member_cannot_update(self, service, sample_member):
        result = service.update_config(RewardConfigUpdate(expiry_enabled=False), Actor(sample_member.id))
        assert result.error_kind == ErrorKind.UNAUTHORIZED.value

    def test_update_bumps_version(self, service, admin, published):
        result = service.update_config(
            RewardConfigUpdate(point_values={"purchase": 2}, expiry_duration_days=180), admin, reason="春季活动"
        )
        assert result.success
        assert result.value.version == 2
        assert result.value.point_values["purchase"] == 2
        assert result.value.point_values["booking"] == 10
        assert result.value.expiry.duration_days == 180

        current = service.snapshot()
        assert current.version == 2
        assert current.expiry.duration_days == 180
        assert published[-1].event_type == EventType.REWARD_CONFIG_UPDATED
        assert published[-1].data["version"] == 2

    def test_history_records_versions(self, service, admin):
        service.update_config(RewardConfigUpdate(expiry_enabled=False), admin, reason="关闭过期")
        history = service.get_history()
        assert [h.version for h in history] == [2, 1]
        assert history[0].is_current
        assert not history[1].is_current
        assert history[0].change_reason == "关闭过期"
        assert history[0].changed_by == admin.member_id

    def test_decreasing_thresholds_rejected(self, service, admin):
        result = service.update_config(RewardConfigUpdate(thresholds={"Gold": 50}), admin)
        assert result.error_kind == ErrorKind.INVALID_CONFIGURATION.value
        assert service.snapshot().version == 1

    def test_lowest_threshold_must_be_zero(self, service, admin):
        result = service.update_config(RewardConfigUpdate(thresholds={"Bronze": 10}), admin)
        assert result.error_kind == ErrorKind.INVALID_CONFIGURATION.value

    def test_unknown_tier_rejected(self, service, admin):
        result = service.update_config(RewardConfigUpdate(discounts={"Diamond": 30}), admin)
        assert result.error_kind == ErrorKind.INVALID_CONFIGURATION.value

    def test_discount_out_of_range(self, service, admin):
        result = service.update_config(RewardConfigUpdate(discounts={"Gold": 150}), admin)
        assert result.error_kind == ErrorKind.INVALID_CONFIGURATION.value

    def test_reclassifies_accounts(self, service, db_session, admin, sample_member, clock, published):
        ledger = LedgerService(db_session, event_publisher=published.publish, clock=clock)
        ledger.post_entry(sample_member.id, 120, LedgerCategory.OTHER, service.snapshot())
        db_session.refresh(sample_member)
        assert sample_member.tier == "Silver"

        service.update_config(RewardConfigUpdate(thresholds={"Silver": 200, "Gold": 500}), admin)
        db_session.refresh(sample_member)
        assert sample_member.tier == "Bronze"
        assert sample_member.points_total == 120
        assert published[-1].data["accounts_reclassified"] == 1


class TestStaleSnapshot:
    """配置变更前取得的快照不会写入过时等级"""

    @pytest.fixture
    def ledger(self, db_session, clock, published):
        return LedgerService(db_session, event_publisher=published.publish, clock=clock)

    def test_posting_after_update_uses_saved_config(self, service, ledger, db_session, admin, sample_member):
        stale = service.snapshot()
        service.update_config(RewardConfigUpdate(thresholds={"Silver": 50}), admin)

        result = ledger.post_entry(sample_member.id, 60, LedgerCategory.OTHER, stale)
        assert result.success
        db_session.refresh(sample_member)
        assert sample_member.points_total == 60
        assert sample_member.tier == "Silver"

    def test_sweep_after_update_keeps_new_tier(self, service, ledger, db_session, admin, sample_member):
        stale = service.snapshot()
        ledger.post_entry(sample_member.id, 120, LedgerCategory.OTHER, stale)
        service.update_config(RewardConfigUpdate(thresholds={"Silver": 200, "Gold": 500}), admin)
        db_session.refresh(sample_member)
        assert sample_member.tier == "Bronze"

        assert ledger.sweep_account(sample_member.id, stale).success
        db_session.refresh(sample_member)
        assert sample_member.tier == "Bronze"

    def test_reversal_after_update_uses_saved_config(self, service, ledger, db_session, admin, sample_member):
        stale = service.snapshot()
        ledger.post_entry(sample_member.id, 80, LedgerCategory.OTHER, stale)
        ledger.post_entry(sample_member.id, 40, LedgerCategory.BOOKING, stale,
                          reference_type="reservation", reference_id="7")
        service.update_config(RewardConfigUpdate(thresholds={"Silver": 50}), admin)

        assert ledger.reverse_reference(sample_member.id, "reservation", "7", stale).success
        db_session.refresh(sample_member)
        assert sample_member.points_total == 80
        assert sample_member.tier == "Silver"
