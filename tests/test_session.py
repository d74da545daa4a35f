"""Tests for the load pipeline, the last-load-wins controller and view state."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from sourcelens import config
from sourcelens.config_manager import ViewerSettings
from sourcelens.models import Finding, SourceResponse
from sourcelens.repository import LocalSourceRepository
from sourcelens.session import ViewerController, load_session, map_findings
from sourcelens.sourcemap import ColumnMapping, PositionIndex
from sourcelens.storage import ViewQuery, ViewStateStore


@pytest.fixture
def controller(sample_scripts_path, graph_builder):
    return ViewerController(
        LocalSourceRepository(sample_scripts_path),
        state_store=ViewStateStore(),
        root=str(sample_scripts_path),
    )


class TestLoadSession:
    def test_app_script_focuses_on_reachable_code(self, sample_scripts_path, graph_builder):
        response = LocalSourceRepository(sample_scripts_path).get_source("app.js")
        session = load_session(response, builder=graph_builder)

        assert [f.line for f in session.mapped_findings] == [9]
        assert [s.name for s in session.reachable.seed_ranges] == ["renderProfile"]
        assert session.reachable.reached_names == ["formatBio"]

        text = session.focused_view.text
        assert "el.innerHTML = html;" in text
        assert "function formatBio" in text
        assert "unrelatedMetrics" not in text
        assert "loadProfile" not in text
        assert session.severity_counts() == {"high": 1}

    def test_minified_bundle_is_expanded(self, sample_scripts_path, graph_builder):
        response = LocalSourceRepository(sample_scripts_path).get_source("bundle.min.js")
        session = load_session(response, builder=graph_builder)
        generated = session.generated_text.split("\n")

        sink = session.mapped_findings[0]
        assert sink.original_line == 1
        assert "document.write" in generated[sink.line - 1]
        assert set(session.graph.def_map) == {"a", "b", "c"}
        assert "function c" not in session.focused_view.text

    def test_target_line_is_mapped(self, sample_scripts_path, graph_builder):
        response = LocalSourceRepository(sample_scripts_path).get_source("app.js")
        session = load_session(response, target_line=13, builder=graph_builder)
        assert "bio.trim()" in session.generated_text.split("\n")[session.mapped_target - 1]

    def test_merge_tolerance_setting_is_honoured(self, sample_scripts_path, graph_builder):
        response = LocalSourceRepository(sample_scripts_path).get_source("app.js")
        settings = ViewerSettings(merge_tolerance=0)
        session = load_session(response, settings=settings, builder=graph_builder)
        assert session.focused_view.text.count("lines hidden") == 3

    def test_findings_outside_functions_leave_full_view(self, graph_builder):
        response = SourceResponse("top.js", "var a = 1;\neval(a);\n", findings=[Finding(line=2)])
        session = load_session(response, builder=graph_builder)
        assert session.reachable is None
        assert not session.has_focus

    def test_map_findings_without_index_is_identity(self):
        mapped = map_findings([Finding(line=7, severity="low", column=3)], None)
        assert mapped[0].line == 7
        assert mapped[0].original_line == 7

    def test_map_findings_uses_columns(self):
        index = PositionIndex(line_map={1: 1}, col_map={1: [ColumnMapping(0, 1), ColumnMapping(20, 4)]})
        assert map_findings([Finding(line=1, column=25)], index)[0].line == 4


class TestViewerController:
    def test_load_installs_session(self, controller):
        outcome = controller.load("app.js")

        assert outcome.error is None
        assert controller.session.source_id == "app.js"
        assert controller.render().focused

    def test_stale_outcome_is_discarded(self, controller):
        first = controller.begin_load("app.js")
        second = controller.begin_load("lib/helpers.js")

        newer = controller.run_load(second, "lib/helpers.js")
        older = controller.run_load(first, "app.js")

        assert controller.apply(newer)
        assert not controller.apply(older)
        assert controller.session.source_id == "lib/helpers.js"

    def test_stale_outcome_arriving_first_is_discarded(self, controller):
        first = controller.begin_load("app.js")
        second = controller.begin_load("lib/helpers.js")

        assert not controller.apply(controller.run_load(first, "app.js"))
        assert controller.session is None
        assert controller.apply(controller.run_load(second, "lib/helpers.js"))

    def test_load_async_last_request_wins(self, controller):
        with ThreadPoolExecutor(max_workers=2) as executor:
            slow = controller.load_async(executor, "app.js")
            fast = controller.load_async(executor, "bundle.min.js", 1)
            outcomes = [slow.result(), fast.result()]

        applied = [controller.apply(outcome) for outcome in outcomes]
        assert applied == [False, True]
        assert controller.session.source_id == "bundle.min.js"
        assert controller.session.sequence == outcomes[1].sequence

    def test_error_replaces_session(self, controller):
        controller.load("app.js")
        outcome = controller.load("missing.js")

        assert outcome.session is None
        assert "not found" in outcome.error
        assert controller.session is None
        assert controller.error == outcome.error
        assert controller.render() is None

    def test_source_list_for_previous_source_is_dropped(self, controller):
        controller.load("app.js")
        listing = controller.fetch_sources()
        controller.begin_load("lib/helpers.js")

        assert not controller.apply_sources(listing)
        assert controller.sources == []

        assert controller.apply_sources(controller.fetch_sources())
        assert controller.sources == ["app.js", "bundle.min.js", "lib/helpers.js"]

    def test_focus_mode_survives_loads(self, controller):
        controller.load("app.js")
        assert not controller.toggle_focus().focused

        controller.load("bundle.min.js")
        assert not controller.render().focused

    def test_cross_source_navigation(self, controller):
        controller.load("app.js")
        nav = controller.navigate_to_definition("sanitizeInput")

        assert nav.kind == "cross"
        assert controller.current_source == "lib/helpers.js"
        assert nav.scroll_line == 1

    def test_cross_navigation_into_minified_source(self, scripts_copy, graph_builder):
        (scripts_copy / "min.js").write_text(
            "function x(){return 1}function y(){return 2}function target(){return 3}"
        )
        controller = ViewerController(LocalSourceRepository(scripts_copy), state_store=ViewStateStore())
        controller.load("app.js")
        nav = controller.navigate_to_definition("target")

        assert nav.kind == "cross"
        assert controller.current_source == "min.js"
        lines = controller.session.generated_text.split("\n")
        assert nav.scroll_line > 1
        assert "function target" in lines[nav.scroll_line - 1]

    def test_load_outcome_carries_target_column(self, controller):
        outcome = controller.load("bundle.min.js", 1, 26)
        assert outcome.target_column == 26
        assert outcome.session.mapped_target > 1

    def test_navigation_without_definition(self, controller):
        controller.load("app.js")
        assert controller.navigate_to_definition("nowhereToBeFound").kind == "none"
        assert controller.current_source == "app.js"

    def test_local_navigation(self, controller):
        controller.load("app.js")
        nav = controller.navigate_to_definition("loadProfile")

        assert nav.kind == "local"
        assert nav.switched_to_full
        assert nav.scroll_line == 1
        assert not controller.focus_mode

    def test_load_saves_view_state(self, controller, sample_scripts_path):
        controller.load("lib/helpers.js", 5)
        saved = ViewStateStore().load()
        assert saved == ViewQuery("lib/helpers.js", 5, str(sample_scripts_path))


class TestViewState:
    def test_query_string_round_trip(self):
        query = ViewQuery("lib/a b.js", 12, "/tmp/scripts")
        assert query.to_query_string() == "source=lib%2Fa+b.js&line=12&root=%2Ftmp%2Fscripts"
        assert ViewQuery.from_query_string("?" + query.to_query_string()) == query

    def test_from_dict_tolerates_bad_values(self):
        assert ViewQuery.from_dict({"source": "x.js", "line": "abc"}) == ViewQuery("x.js", 0)
        assert ViewQuery.from_dict({"source": "x.js", "line": "-4"}) == ViewQuery("x.js", 0)
        assert ViewQuery.from_dict({"line": "3"}) is None

    def test_store_round_trip_and_clear(self):
        store = ViewStateStore()
        assert store.load() is None

        store.save(ViewQuery("app.js", 9))
        assert store.load() == ViewQuery("app.js", 9)

        store.clear()
        assert store.load() is None

    def test_corrupt_state_file(self):
        store = ViewStateStore()
        config.STATE_FILE.write_text("{broken", encoding="utf-8")
        assert store.load() is None
