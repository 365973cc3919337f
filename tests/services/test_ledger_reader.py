"""
Tests for LedgerReader: host enumeration, period filtering and tip attribution.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from conftest import in_period
from settlement_kernel.domain.dtos import TransactionStatus, TransactionType
from settlement_services.ledger_reader import LedgerReader


@pytest.fixture
def reader(session, config):
    return LedgerReader(session, config)


class TestListHosts:

    def test_active_hosts_without_platform(self, ledger, reader):
        ledger.platform()
        ledger.host("zeta-host")
        ledger.host("alpha-host")
        ledger.host("dormant-host", is_active=False)

        slugs = [h.slug for h in reader.list_hosts()]

        assert slugs == ["alpha-host", "zeta-host"]

    def test_host_record_fields(self, ledger, reader):
        ledger.host("brussels-host", currency="EUR", plan="grow-plan-2021")

        (host,) = reader.list_hosts()

        assert host.currency == "EUR"
        assert host.plan == "grow-plan-2021"
        assert host.default_payout_method == "BANK_ACCOUNT"

    def test_get_host_unknown_raises(self, reader):
        with pytest.raises(LookupError):
            reader.get_host(uuid4())


class TestReadPeriod:

    def test_rows_partitioned_by_host(self, ledger, reader, period):
        a = ledger.host("a-host")
        b = ledger.host("b-host")
        a1 = ledger.contribution(a, platform_fee=10)
        a2 = ledger.contribution(a, host_fee=20)
        b1 = ledger.contribution(b, platform_fee=30)

        result = reader.read_period(period)

        assert {t.transaction_id for t in result.by_host[a.id]} == {
            a1.id, a2.id,
        }
        assert [t.transaction_id for t in result.by_host[b.id]] == [b1.id]
        assert result.unattributed_tips == ()

    def test_window_is_half_open(self, ledger, reader, period):
        host = ledger.host("edge-host")
        at_start = ledger.contribution(host, created_at=period.start)
        ledger.contribution(host, created_at=period.end)
        ledger.contribution(
            host, created_at=datetime(2026, 8, 31, 23, 59, 59, tzinfo=timezone.utc),
        )

        result = reader.read_period(period)

        assert [t.transaction_id for t in result.by_host[host.id]] == [at_start.id]

    def test_only_confirmed_credits_qualify(self, ledger, reader, period):
        host = ledger.host("status-host")
        confirmed = ledger.contribution(host)
        ledger.contribution(host, status=TransactionStatus.REFUNDED)
        ledger.contribution(host, status=TransactionStatus.PENDING)
        ledger.contribution(host, type=TransactionType.DEBIT)

        result = reader.read_period(period)

        assert [t.transaction_id for t in result.by_host[host.id]] == [confirmed.id]

    def test_settled_rows_are_read_as_settled(self, ledger, reader, period):
        host = ledger.host("legacy-host")
        ledger.contribution(host, host_fee=300, settled=True)

        result = reader.read_period(period)

        assert result.by_host[host.id][0].is_settled

    def test_tip_attributed_to_contribution_host(self, ledger, reader, period):
        platform = ledger.platform()
        host = ledger.host("tipped-host")
        contribution = ledger.contribution(host, platform_fee=100)
        tip = ledger.tip(contribution, platform=platform)

        result = reader.read_period(period)

        ids = [t.transaction_id for t in result.by_host[host.id]]
        assert ids == [contribution.id, tip.id]
        assert platform.id not in result.by_host

    def test_tip_for_earlier_contribution(self, ledger, reader, period):
        host = ledger.host("late-tip-host")
        earlier = ledger.contribution(
            host, created_at=datetime(2026, 8, 20, tzinfo=timezone.utc),
        )
        tip = ledger.tip(earlier, currency="GBP")

        result = reader.read_period(period)

        assert [t.transaction_id for t in result.by_host[host.id]] == [tip.id]

    def test_unattributed_tip_reported(self, ledger, reader, period, captured_logs):
        tip = ledger.tip(None, group=uuid4())

        result = reader.read_period(period)

        assert [t.transaction_id for t in result.unattributed_tips] == [tip.id]
        assert result.by_host == {}
        assert any(r["message"] == "unattributed_tips_found" for r in captured_logs())


class TestReadHost:

    def test_known_groups_cover_tip_references(self, ledger, reader, period):
        host = ledger.host("group-host")
        earlier = ledger.contribution(
            host, created_at=datetime(2026, 8, 20, tzinfo=timezone.utc),
        )
        current = ledger.contribution(host, created_at=in_period(5))
        tip = ledger.tip(earlier, currency="GBP", created_at=in_period(6))

        host_ledger = reader.read_host(host.id, period)

        assert host_ledger.host.slug == "group-host"
        assert [t.transaction_id for t in host_ledger.transactions] == [
            current.id, tip.id,
        ]
        assert host_ledger.known_groups == frozenset({
            current.transaction_group, earlier.transaction_group,
        })

    def test_other_hosts_excluded(self, ledger, reader, period):
        host = ledger.host("mine")
        other = ledger.host("theirs")
        mine = ledger.contribution(host)
        theirs = ledger.contribution(other)
        ledger.tip(theirs, currency="GBP")

        host_ledger = reader.read_host(host.id, period)

        assert [t.transaction_id for t in host_ledger.transactions] == [mine.id]

    def test_only_own_tip_groups_are_resolved(self, ledger, reader, period, monkeypatch):
        host = ledger.host("small-host")
        other = ledger.host("busy-host")
        mine = ledger.contribution(host)
        mine_tip = ledger.tip(mine, currency="GBP")
        for _ in range(3):
            ledger.tip(ledger.contribution(other), currency="GBP")
        ledger.tip(None, group=uuid4(), currency="GBP")

        looked_up = []
        group_owners = reader._group_owners

        def spy(groups):
            groups = set(groups)
            looked_up.append(groups)
            return group_owners(groups)

        monkeypatch.setattr(reader, "_group_owners", spy)

        host_ledger = reader.read_host(host.id, period)

        assert looked_up == [{mine.transaction_group}]
        assert [t.transaction_id for t in host_ledger.transactions] == [
            mine.id, mine_tip.id,
        ]
