"""Tests for the static menu registry and menu rendering."""

from __future__ import annotations

import pytest

from assistant.menus import (
    MENUS,
    SHOW_MENU,
    SUGGESTABLE_MENUS,
    UnknownMenuError,
    get_menu,
    numbered_options,
    render_menu,
    root_menu_id,
    validate_menus,
)


class TestRegistryIntegrity:
    def test_every_reference_resolves(self):
        assert validate_menus() == []

    @pytest.mark.parametrize("menu_id", sorted(MENUS))
    def test_submenu_targets_exist(self, menu_id):
        for opt in MENUS[menu_id]["options"]:
            if opt["action"] == SHOW_MENU:
                assert opt["params"]["menu"] in MENUS

    def test_suggestable_menus_exist(self):
        for ids in SUGGESTABLE_MENUS.values():
            assert all(i in MENUS for i in ids)

    def test_validate_reports_dangling_submenu(self):
        broken = {
            "a": {"id": "a", "text": "A", "options": [
                {"id": "x", "label": "X", "action": SHOW_MENU, "params": {"menu": "missing"}},
            ]},
        }
        problems = validate_menus(broken)
        assert any("missing" in p for p in problems)

    def test_validate_reports_unknown_action(self):
        broken = {"a": {"id": "a", "text": "A", "options": [{"id": "x", "label": "X", "action": "teleport"}]}}
        assert any("teleport" in p for p in validate_menus(broken))


class TestRootMenus:
    def test_roles(self):
        assert root_menu_id("guest") == "guest_root"
        assert root_menu_id("client") == "client_root"

    def test_unknown_role_gets_guest_root(self):
        assert root_menu_id("admin") == "guest_root"
        assert root_menu_id(None) == "guest_root"


class TestRenderMenu:
    def test_numbers_labels_and_keeps_originals_in_state(self):
        out = render_menu("guest_root", "Ana")
        options = MENUS["guest_root"]["options"]

        assert out["menu_id"] == "guest_root"
        assert [o["label"] for o in out["options"]] == [f"{i}. {o['label']}" for i, o in enumerate(options, 1)]
        assert out["next_state"]["lastOptions"] == options
        assert out["next_state"]["lastMenuId"] == "guest_root"
        assert out["next_state"]["mode"] == "idle"
        assert out["next_state"]["step"] == 0
        assert out["next_state"]["data"] == {}

    def test_substitutes_display_name(self):
        assert "Ana" in render_menu("guest_root", "Ana")["text"]
        assert "[Name]" not in render_menu("guest_root", None)["text"]

    def test_undefined_name_is_not_shown(self):
        assert "undefined" not in render_menu("client_root", "undefined")["text"]

    def test_unknown_menu_is_neutral_reply(self):
        out = render_menu("nope")
        assert out["text"] == "Menu not found."
        assert out["options"] is None
        assert out["next_state"] == {"mode": "idle", "step": 0, "data": {}}

    def test_display_copy_does_not_touch_registry(self):
        before = [o["label"] for o in MENUS["client_root"]["options"]]
        numbered_options(MENUS["client_root"]["options"])
        render_menu("client_root")
        assert [o["label"] for o in MENUS["client_root"]["options"]] == before

    def test_get_menu_raises_for_unknown(self):
        with pytest.raises(UnknownMenuError):
            get_menu("nope")

    def test_rendered_options_are_independent_of_registry(self):
        out = render_menu("guest_root")
        out["options"][0]["params"]["menu"] = "hijacked"
        out["next_state"]["lastOptions"][0]["params"]["menu"] = "hijacked"
        assert MENUS["guest_root"]["options"][0]["params"]["menu"] == "guest_quote"

    def test_non_string_display_name(self):
        assert render_menu("client_root", 123)["text"].startswith("Hi there,")
