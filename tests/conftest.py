"""
通用测试 Fixture 定义

提供测试所需的假传输层、假时钟、假调度器和编排器工厂
"""

import django
import pytest
from django.conf import settings

# 配置 Django 设置（DRF 序列化器需要）
if not settings.configured:
    settings.configure(
        DEBUG=True,
        SECRET_KEY="test-secret-key",
        USE_I18N=True,
        USE_TZ=True,
    )
    django.setup()

from fakes import FakeClock, FakeScheduler, FakeTransport, RecordingLoadingIndicator  # noqa: E402
from reqflow.orchestrator import RequestOrchestrator  # noqa: E402


@pytest.fixture
def fake_transport():
    """默认返回 {"code": 0, "data": None} 的同步假传输层"""
    return FakeTransport()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def loading_indicator():
    return RecordingLoadingIndicator()


@pytest.fixture
def make_orchestrator(fake_clock, fake_scheduler, loading_indicator):
    """
    构建使用假组件的编排器

    用法: make_orchestrator(FakeTransport([...]), base_url="https://api.example.com/")
    """

    def _make(transport=None, **options):
        return RequestOrchestrator(
            transport=transport if transport is not None else FakeTransport(),
            loading_indicator=loading_indicator,
            scheduler=fake_scheduler,
            clock=fake_clock,
            **options,
        )

    return _make
