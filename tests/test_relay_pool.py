"""
Tests for relay_pool.py and providers.py.

Covers:
  1. Ranking and probing order on acquire
  2. Failure set, lazy refresh and direct-mode fallback
  3. Provider isolation (one failing provider never poisons the pool)
  4. Paid relays ranked below every free candidate
  5. Provider response parsing
"""

import json

import pytest

from leadcrawler.errors import PoolExhausted
from leadcrawler.providers import (
    PAID_SCORE_CEILING,
    GeonodeProvider,
    LitportProvider,
    ProxyScrapeProvider,
    StaticRelayProvider,
    score_candidate,
)
from leadcrawler.relay_pool import RelayPool

from fakes import BrokenProvider, ListProvider, ScriptedProbe, candidate, run


def _pool(providers, answers=None):
    probe = ScriptedProbe(answers)
    return RelayPool(providers, probe=probe), probe


# ====================================================================
# 1. Acquire order
# ====================================================================

class TestAcquire:
    """acquire() walks the ranking best-first and marks failed probes."""

    def test_skips_unreachable_in_score_order(self):
        provider = ListProvider([
            candidate("http://10.0.0.3:80", 50),
            candidate("http://10.0.0.1:80", 90),
            candidate("http://10.0.0.2:80", 70),
        ])
        pool, probe = _pool([provider], {
            "http://10.0.0.1:80": False,
            "http://10.0.0.2:80": False,
        })

        async def scenario():
            await pool.refresh()
            return await pool.acquire()

        relay = run(scenario())
        assert relay.address == "http://10.0.0.3:80"
        assert probe.probed == ["http://10.0.0.1:80", "http://10.0.0.2:80", "http://10.0.0.3:80"]
        assert pool.is_failed("http://10.0.0.1:80")
        assert pool.is_failed("http://10.0.0.2:80")
        assert not pool.is_failed("http://10.0.0.3:80")

    def test_failed_candidates_are_not_probed_again(self):
        provider = ListProvider([candidate("http://a:1", 90), candidate("http://b:1", 80)])
        pool, probe = _pool([provider])

        async def scenario():
            await pool.refresh()
            pool.mark_failed("http://a:1")
            return await pool.acquire()

        relay = run(scenario())
        assert relay.address == "http://b:1"
        assert "http://a:1" not in probe.probed

    def test_acquire_on_empty_pool_refreshes_once(self):
        provider = ListProvider([candidate("http://a:1", 10)])
        pool, _ = _pool([provider])
        relay = run(pool.acquire())
        assert relay.address == "http://a:1"
        assert provider.calls == 1

    def test_probe_budget_limits_one_walk(self):
        provider = ListProvider([candidate(f"http://h{i}:1", 100 - i) for i in range(10)])
        probe = ScriptedProbe({f"http://h{i}:1": False for i in range(10)})
        pool = RelayPool([provider], probe=probe, max_probes_per_acquire=3)
        assert run(pool.acquire()) is None
        # Two walks (before and after the refresh), three probes each
        assert len(probe.probed) == 6

    def test_probe_exception_counts_as_failure(self):
        async def exploding_probe(relay):
            raise OSError("boom")

        provider = ListProvider([candidate("http://a:1", 10)])
        pool = RelayPool([provider], probe=exploding_probe)
        assert run(pool.acquire()) is None
        assert pool.failed == {"http://a:1"}
        assert provider.calls == 2


# ====================================================================
# 2. Exhaustion
# ====================================================================

class TestExhaustion:
    """Nothing reachable: direct mode when allowed, PoolExhausted otherwise."""

    def test_all_failed_returns_none_when_direct_allowed(self):
        provider = ListProvider([candidate("http://a:1", 10)])
        pool, _ = _pool([provider], {"http://a:1": False})
        assert run(pool.acquire(allow_direct=True)) is None

    def test_all_failed_raises_when_direct_disallowed(self):
        provider = ListProvider([candidate("http://a:1", 10)])
        pool, _ = _pool([provider], {"http://a:1": False})
        with pytest.raises(PoolExhausted):
            run(pool.acquire(allow_direct=False))

    def test_no_providers_at_all(self):
        pool, _ = _pool([])
        assert run(pool.acquire()) is None
        with pytest.raises(PoolExhausted):
            run(pool.acquire(allow_direct=False))

    def test_refresh_clears_failure_set(self):
        provider = ListProvider([candidate("http://a:1", 10)])
        pool, _ = _pool([provider])

        async def scenario():
            await pool.refresh()
            pool.mark_failed("http://a:1")
            assert pool.stats()["available"] == 0
            await pool.refresh()

        run(scenario())
        assert pool.failed == set()
        assert pool.generation == 2

    def test_reset_keeps_candidates(self):
        provider = ListProvider([candidate("http://a:1", 10)])
        pool, _ = _pool([provider])

        async def scenario():
            await pool.refresh()
            pool.mark_failed("http://a:1")
            pool.reset()

        run(scenario())
        assert pool.failed == set()
        assert len(pool.candidates) == 1
        assert provider.calls == 1


# ====================================================================
# 3. Provider isolation
# ====================================================================

class TestProviderIsolation:
    """A raising or empty provider contributes nothing and breaks nothing."""

    def test_broken_provider_is_isolated(self):
        good = ListProvider([candidate("http://good:1", 50)])
        pool, _ = _pool([BrokenProvider(), good])
        candidates = run(pool.refresh())
        assert [c.address for c in candidates] == ["http://good:1"]

    def test_duplicates_across_providers_are_merged(self):
        a = ListProvider([candidate("http://same:1", 50)], source_id="a")
        b = ListProvider([candidate("http://same:1", 80)], source_id="b")
        pool, _ = _pool([a, b])
        candidates = run(pool.refresh())
        assert len(candidates) == 1
        assert candidates[0].source_id == "a"

    def test_http_provider_swallows_transport_errors(self):
        provider = ProxyScrapeProvider(timeout_s=0.1)

        async def failing_get():
            raise OSError("network down")

        provider._get_text = failing_get
        assert run(provider.fetch_candidates()) == []


# ====================================================================
# 4. Paid relays
# ====================================================================

class TestPaidRelays:
    """Paid relays are reached only after every free candidate failed."""

    def test_paid_scored_below_free(self):
        paid = StaticRelayProvider(["paid1:8080", "paid2:8080"], source_id="paid", paid=True)
        free = ListProvider([candidate("http://free:1", 5)])
        pool, probe = _pool([paid, free], {"http://free:1": False})
        relay = run(pool.acquire())
        assert relay.address == "http://paid1:8080"
        assert probe.probed[0] == "http://free:1"

    def test_paid_scores_keep_configured_order(self):
        paid = StaticRelayProvider(["a:1", "b:1", "c:1"], paid=True)
        scores = [c.score for c in run(paid.fetch_candidates())]
        assert scores == sorted(scores, reverse=True)
        assert all(s <= PAID_SCORE_CEILING for s in scores)

    def test_zero_scored_free_relay_beats_paid(self):
        # High-latency SOCKS relay: its score clamps to zero
        geonode = GeonodeProvider()
        parsed = geonode.parse(json.dumps({"data": [{
            "ip": "9.9.9.9", "port": "1080", "protocols": ["socks5"],
            "upTime": 95, "speed": 1, "latency": 2000,
        }]}))
        assert parsed[0].score == 0.0
        paid = StaticRelayProvider(["paid1:8080"], source_id="paid", paid=True)
        pool, _ = _pool([paid, ListProvider(parsed, source_id="geonode")])
        relay = run(pool.acquire())
        assert relay.source_id != "paid"
        assert relay.address == "socks5://9.9.9.9:1080"

    def test_static_provider_keeps_socks_scheme(self):
        static = StaticRelayProvider(["socks5://1.2.3.4:1080"])
        (relay,) = run(static.fetch_candidates())
        assert relay.is_socks
        assert relay.host == "1.2.3.4"
        assert relay.port == 1080


# ====================================================================
# 5. Provider parsing
# ====================================================================

class TestProviderParsing:

    def test_score_prefers_http_and_low_latency(self):
        assert score_candidate(protocol="http") > score_candidate(protocol="socks5")
        assert score_candidate(latency_ms=100) > score_candidate(latency_ms=900)

    def test_proxyscrape_parses_plain_lines(self):
        provider = ProxyScrapeProvider()
        relays = provider.parse("http://1.1.1.1:80\nsocks4://9.9.9.9:1080\n\nhttp://2.2.2.2:3128\n")
        assert [r.address for r in relays] == ["http://1.1.1.1:80", "http://2.2.2.2:3128"]

    def test_geonode_parses_json(self):
        body = json.dumps({"data": [
            {"ip": "3.3.3.3", "port": "8080", "protocols": ["http"], "upTime": 95, "latency": 120},
            {"ip": "4.4.4.4", "port": "1080", "protocols": ["socks5"], "upTime": 99, "latency": 50},
        ]})
        relays = GeonodeProvider().parse(body)
        addresses = {r.address for r in relays}
        assert "http://3.3.3.3:8080" in addresses
        assert "socks5://4.4.4.4:1080" in addresses

    def test_litport_garbage_body_yields_nothing(self):
        provider = LitportProvider()

        async def garbage():
            return "not json at all"

        provider._get_text = garbage
        assert run(provider.fetch_candidates()) == []
