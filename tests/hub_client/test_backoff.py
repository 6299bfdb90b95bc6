import pytest

from hub_client import ReconnectPolicy
from hub_client.config import HubSettings


def test_default_policy_delays():
    assert list(ReconnectPolicy().delays()) == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_delay_is_capped():
    policy = ReconnectPolicy(initial_delay=0.5, max_delay=3.0, max_attempts=10)
    assert policy.delay(1) == 0.5
    assert policy.delay(3) == 2.0
    assert policy.delay(10) == 3.0


def test_attempts_are_one_based():
    with pytest.raises(ValueError):
        ReconnectPolicy().delay(0)


def test_settings_build_policy():
    cfg = HubSettings(reconnect_initial_delay_sec=2.0, reconnect_max_delay_sec=8.0, reconnect_attempts=3)
    assert list(cfg.reconnect_policy().delays()) == [2.0, 4.0, 8.0]
