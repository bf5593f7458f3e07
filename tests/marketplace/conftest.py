import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_adapters():
    from marketplace.eventlog import reset_event_log
    from marketplace.payment.gateway import reset_gateway

    yield
    reset_gateway()
    reset_event_log()


@pytest.fixture
def event_log():
    from marketplace.eventlog.memory_adapter import InMemoryEventLog

    return InMemoryEventLog()


@pytest.fixture
def gateway():
    from marketplace.payment.gateway.fake_adapter import FakeGateway

    return FakeGateway()
