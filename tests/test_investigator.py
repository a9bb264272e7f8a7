"""
Tests for investigator.py.

Covers:
  1. Field completion across a homepage and a bio-link page
  2. Visited set, depth limit and navigation budget
  3. Zero-cost URL extraction (no navigation for mailto/wa.me/profile links)
  4. Blocked links and failing branches
  5. Cancellation
  6. finalize()
"""

import pytest

from leadcrawler.errors import ConnectivityError, JobCancelled
from leadcrawler.investigator import CrawlInvestigator
from leadcrawler.models import InvestigationResult

from fakes import FakeSession, page, run

HOME = "https://biz.example"


def _investigator(pages, **kwargs):
    session = FakeSession(pages)
    return CrawlInvestigator(session, nav_timeout_s=1.0, **kwargs), session


# ====================================================================
# 1. Field completion
# ====================================================================

class TestFieldCompletion:
    """The bio-link page outranks the contact page and closes the search."""

    def test_phone_on_home_email_on_bio_link(self):
        pages = {
            HOME: page(
                title="Biz", text="Bem-vindo",
                anchors=[
                    ("tel:+5511987654321", "Ligue"),
                    ("https://linktr.ee/bizexample", "Links"),
                    ("https://biz.example/contato", "Contato"),
                ],
            ),
            "https://linktr.ee/bizexample": page(
                text="Fale com a gente: contato@bizexample.com.br",
                anchors=["https://loja.bizexample.com.br/"],
            ),
            "https://biz.example/contato": page(text="never read"),
        }
        inv, session = _investigator(pages)

        async def scenario():
            ctx = inv.new_context(("email", "phone"))
            result = await inv.investigate(HOME + "/", 0, ctx)
            return inv.finalize(result), ctx

        result, ctx = run(scenario())
        assert result.email == "contato@bizexample.com.br"
        assert result.phone == "+55 (11) 98765-4321"
        assert session.navigations == [HOME, "https://linktr.ee/bizexample"]
        assert "https://biz.example/contato" not in ctx.visited

    def test_already_complete_home_follows_nothing(self):
        pages = {
            HOME: page(
                text="contato@biz.com.br (11) 98765-4321",
                anchors=[("https://biz.example/contato", "Contato")],
            ),
        }
        inv, session = _investigator(pages)
        result = run(inv.investigate(HOME, 0, inv.new_context(("email", "phone"))))
        assert result.email == "contato@biz.com.br"
        assert session.navigations == [HOME]

    def test_registry_id_and_text_handle(self):
        pages = {HOME: page(text="CNPJ 12.345.678/0001-90 siga @bizoficial")}
        inv, _ = _investigator(pages)
        result = run(inv.investigate(HOME))
        assert result.registry_id == "12.345.678/0001-90"
        assert result.handle == "bizoficial"


# ====================================================================
# 2. Traversal bounds
# ====================================================================

def _site_without_contacts():
    return {
        HOME: page(anchors=[
            ("https://biz.example/contato", "Contato"),
            ("https://biz.example/sobre", "Sobre"),
        ]),
        "https://biz.example/contato": page(anchors=[("https://biz.example/sobre", "Sobre nos")]),
        "https://biz.example/sobre": page(anchors=[(HOME + "/", "Inicio contato")]),
    }


class TestTraversalBounds:

    def test_each_page_loaded_once(self):
        inv, session = _investigator(_site_without_contacts())
        run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        assert session.navigations == [
            HOME, "https://biz.example/contato", "https://biz.example/sobre",
        ]

    def test_depth_limit(self):
        inv, session = _investigator(_site_without_contacts(), max_depth=1)
        run(inv.investigate(HOME))
        assert session.navigations == [HOME]

    def test_seed_at_max_depth_is_not_visited(self):
        inv, session = _investigator(_site_without_contacts(), max_depth=2)
        result = run(inv.investigate(HOME, 2))
        assert result == InvestigationResult()
        assert session.navigations == []

    def test_navigation_budget(self):
        inv, session = _investigator(_site_without_contacts(), max_navigations=2)
        run(inv.investigate(HOME))
        assert len(session.navigations) == 2

    def test_links_per_depth(self):
        inv, session = _investigator(_site_without_contacts(), links_per_depth={0: 1})
        run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        # Only the best-ranked link at depth 0; sobre is reached through it
        assert session.navigations[1] == "https://biz.example/contato"
        assert inv.links_for_depth(0) == 1
        assert inv.links_for_depth(7) == inv.links_beyond

    def test_redirect_loop_is_not_scanned_twice(self):
        pages = {
            HOME: page(anchors=[("https://biz.example/contato", "Contato")]),
            "https://biz.example/contato": page(redirect="https://other.example"),
            "https://other.example": page(anchors=[("https://biz.example/contato", "Contato")]),
        }
        inv, session = _investigator(pages)
        run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        assert session.navigations.count("https://biz.example/contato") == 1


# ====================================================================
# 3. Zero-cost extraction
# ====================================================================

class TestZeroCost:
    """Links carrying the datum in the URL are read, never visited."""

    def test_mailto_seed(self):
        inv, session = _investigator({})
        result = run(inv.investigate("mailto:vendas@biz.com.br"))
        assert result.email == "vendas@biz.com.br"
        assert session.navigations == []

    def test_messaging_and_profile_links_not_visited(self):
        pages = {
            HOME: page(anchors=[
                ("https://wa.me/5511987654321", "WhatsApp"),
                ("https://instagram.com/bizexample", "Instagram"),
            ]),
        }
        inv, session = _investigator(pages)
        result = inv.finalize(run(inv.investigate(HOME)))
        assert result.messaging == "+55 (11) 98765-4321"
        assert result.handle == "bizexample"
        assert session.navigations == [HOME]


# ====================================================================
# 4. Blocked links and failing branches
# ====================================================================

class TestBranches:

    def test_blocked_domain_never_navigated(self):
        pages = {
            HOME: page(anchors=[("https://facebook.com/biz", "Contato no Facebook")]),
        }
        inv, session = _investigator(pages)
        run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        assert session.navigations == [HOME]

    def test_failing_branch_contributes_nothing(self):
        pages = {
            HOME: page(anchors=[
                ("https://biz.example/contato", "Contato"),
                ("https://biz.example/sobre", "Sobre"),
            ]),
            "https://biz.example/contato": page(
                error=ConnectivityError("net::ERR_CONNECTION_RESET"),
            ),
            "https://biz.example/sobre": page(text="escreva para ola@biz.com.br"),
        }
        inv, session = _investigator(pages)
        result = run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        assert result.email == "ola@biz.com.br"
        assert "https://biz.example/sobre" in session.navigations

    def test_unreachable_seed_returns_empty(self):
        inv, _ = _investigator({})
        assert run(inv.investigate("https://nowhere.example")) == InvestigationResult()


# ====================================================================
# 5. Cancellation
# ====================================================================

class TestCancellation:

    def test_cancel_propagates_out_of_recursion(self):
        session = FakeSession(_site_without_contacts())
        inv = CrawlInvestigator(session, should_abort=lambda: len(session.navigations) >= 1)
        with pytest.raises(JobCancelled):
            run(inv.investigate(HOME, 0, inv.new_context(("email",))))
        assert session.navigations == [HOME]


# ====================================================================
# 6. finalize
# ====================================================================

class TestFinalize:

    def test_phones_deduped_and_mobile_becomes_messaging(self):
        inv, _ = _investigator({})
        result = InvestigationResult(phone_list=[
            "(11) 3333-4444", "+55 11 3333-4444", "11 98765-4321",
        ])
        inv.finalize(result)
        assert result.phone_list == ["+55 (11) 3333-4444", "+55 (11) 98765-4321"]
        assert result.phone == "+55 (11) 3333-4444"
        assert result.messaging == "+55 (11) 98765-4321"

    def test_explicit_messaging_wins(self):
        inv, _ = _investigator({})
        result = InvestigationResult(messaging_list=["+55 (21) 99999-0000"], phone_list=["11 98765-4321"])
        inv.finalize(result)
        assert result.messaging == "+55 (21) 99999-0000"
