"""
Tests for link_policy.py.

Covers:
  1. Domain / path blocking, with the bio-link and own-site exceptions
  2. Candidate collection
  3. Scoring and prioritisation by missing fields
"""

import pytest

from leadcrawler.link_policy import (
    SCORE_ABOUT,
    SCORE_BIO_LINK,
    SCORE_CONTACT,
    LinkPolicy,
    is_bio_link,
    is_profile_network,
)


@pytest.fixture
def policy():
    return LinkPolicy()


# ====================================================================
# 1. Blocking
# ====================================================================

class TestBlocking:

    @pytest.mark.parametrize("url", [
        "https://www.facebook.com/biz",
        "https://m.facebook.com/biz",
        "https://play.google.com/store/apps/details?id=x",
        "https://cdn.biz.example/app.js",
        "https://other.example/privacy",
        "https://other.example/login",
        "https://other.example/contato",
        "ftp://biz.example/",
        "",
    ])
    def test_blocked(self, policy, url):
        assert policy.is_blocked(url)

    @pytest.mark.parametrize("url", [
        "https://biz.example/",
        "https://biz.example/cardapio",
        "https://wa.me/5511987654321",
        "https://api.whatsapp.com/send?phone=5511987654321",
        "https://instagram.com/bizexample",
    ])
    def test_allowed(self, policy, url):
        assert not policy.is_blocked(url)

    def test_own_site_contact_pages_are_allowed(self, policy):
        home = "https://www.biz.example"
        assert not policy.is_blocked("https://biz.example/contato", home_url=home)
        assert not policy.is_blocked("https://biz.example/sobre", home_url=home)
        # Still blocked on everyone else's site
        assert policy.is_blocked("https://other.example/contato", home_url=home)

    def test_own_site_keeps_generic_blocks(self, policy):
        assert policy.is_blocked("https://biz.example/privacidade", home_url="https://biz.example")

    def test_bio_link_profile_allowed_generic_page_blocked(self, policy):
        assert not policy.is_blocked("https://linktr.ee/bizexample")
        assert not policy.is_blocked("https://linktr.ee/help-desk-biz")
        assert policy.is_blocked("https://linktr.ee/privacy")
        assert policy.is_blocked("https://linktr.ee/login/")

    def test_extra_blocked_domains(self):
        policy = LinkPolicy(extra_blocked=["spam.example"])
        assert policy.is_blocked("https://shop.spam.example/x")


# ====================================================================
# 2. Candidates
# ====================================================================

class TestCandidates:

    def test_keyword_in_href_or_text(self, policy):
        assert policy.is_candidate("https://biz.example/fale-conosco")
        assert policy.is_candidate("https://biz.example/pagina-3", "Fale conosco")
        assert not policy.is_candidate("https://biz.example/cardapio", "Cardapio")

    def test_rich_links_always_candidates(self, policy):
        assert policy.is_candidate("https://beacons.ai/biz")
        assert policy.is_candidate("https://www.instagram.com/biz")
        assert policy.is_candidate("https://wa.me/5511987654321")

    def test_non_http_never_candidate(self, policy):
        assert not policy.is_candidate("mailto:contato@biz.com.br", "contato")
        assert not policy.is_candidate("/contato", "contato")

    def test_host_helpers(self):
        assert is_bio_link("https://www.linktr.ee/x")
        assert not is_bio_link("https://notlinktr.ee/x")
        assert is_profile_network("https://instagr.am/x")


# ====================================================================
# 3. Scoring
# ====================================================================

class TestScoring:

    def test_bio_link_outranks_contact(self, policy):
        links = [
            "https://biz.example/sobre",
            "https://biz.example/contato",
            "https://linktr.ee/biz",
        ]
        ranked = policy.prioritize(links, ["email"])
        assert ranked == ["https://linktr.ee/biz", "https://biz.example/contato", "https://biz.example/sobre"]

    def test_contact_score_depends_on_missing(self, policy):
        assert policy.score("https://biz.example/contato", ["email"]) == SCORE_CONTACT
        assert policy.score("https://biz.example/contato", ["handle"]) == 0

    def test_profile_scored_only_when_handle_missing(self, policy):
        assert policy.score("https://instagram.com/biz", ["handle"]) > 0
        assert policy.score("https://instagram.com/biz", ["email"]) == 0

    def test_scores_add_up(self, policy):
        assert policy.score("https://about.me/biz", []) == SCORE_BIO_LINK + SCORE_ABOUT

    def test_ties_keep_page_order(self, policy):
        links = ["https://biz.example/a", "https://biz.example/b", "https://biz.example/c"]
        assert policy.prioritize(links, ["email"]) == links
