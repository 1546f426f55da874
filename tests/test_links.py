"""Tests for official-link matching."""

from assistant.graph.intent import normalize_input
from assistant.links import LINKS, find_links, link_options
from assistant.menus import LINK, validate_menus


class TestFindLinks:
    def test_keyword_hit(self):
        links = find_links(normalize_input("I forgot my password for the tax office"))
        assert [link["id"] for link in links] == ["recover_password"]

    def test_accents_are_ignored(self):
        assert [link["id"] for link in find_links(normalize_input("quiero hacer el Inicio Actividades"))] == ["start_of_activities"]

    def test_several_hits_keep_table_order(self):
        ids = [link["id"] for link in find_links(normalize_input("pay f29 and then the f22"))]
        assert ids == ["pay_f29", "income_tax_return"]

    def test_no_hit(self):
        assert find_links(normalize_input("what a nice day")) == []


class TestLinkOptions:
    def test_options_are_valid_link_actions(self):
        options = link_options(LINKS)
        assert all(o["action"] == LINK and o["params"]["url"].startswith("https://") for o in options)
        problems = validate_menus({"links": {"id": "links", "text": "", "options": options}})
        assert not [p for p in problems if p.startswith("links/")]
