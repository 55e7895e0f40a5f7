"""End-to-end tests for the reconciliation driver with in-memory stores."""

import json
from unittest.mock import MagicMock, patch

import pytest

import changelog_sync_bot
from changelog_config import Config
from changelog_data import ChangeEntry, EmptyChangelogError, OrphanedVersionError
from page_classifier import PageStatus
from paced_pool import PacedPool

from conftest import VERSION_ROWS, FakeStore, SinglePageStore


CHANGES = [
    ChangeEntry("Castle", "Alpha v1.1", "Added moat"),
    ChangeEntry("Keep", "Alpha v1.0", "Added keep"),
    ChangeEntry("Keep", "Alpha v1.1", "Taller walls"),
    ChangeEntry("Tower", "Alpha v1.0", "Added tower"),
    ChangeEntry("Wall", "Alpha v1.0", "Added wall"),
    ChangeEntry("Gate", "Alpha v1.1", "Added gate"),
]


@pytest.fixture
def cfg():
    return Config(username="Bot", password="pw", max_workers=2, request_interval=0)


@pytest.fixture
def pages(history_page):
    return {
        "Castle": None,
        "Keep": history_page("Alpha v1.0"),
        "Tower": history_page("Alpha v1.0"),
        "Wall": "Just a wall.",
        "Gate": "Gate.\n{{NAW Changelist}}\n[[Category:Gates]]",
    }


def _run(store, cfg, answer=True, **kwargs):
    confirm = MagicMock(return_value=answer)
    report = changelog_sync_bot.reconcile(
        VERSION_ROWS, CHANGES, store, cfg, confirm=confirm,
        pool=PacedPool(cfg.max_workers, 0), show_progress=False, **kwargs,
    )
    return report, confirm


def test_classifies_and_pushes_pending_pages(pages, cfg):
    store = FakeStore(pages)
    report, confirm = _run(store, cfg)

    statuses = {p: c.status for p, c in report.classifications.items()}
    assert statuses == {
        "Castle": PageStatus.NO_EXIST,
        "Keep": PageStatus.TO_UPDATE,
        "Tower": PageStatus.UP_TO_DATE,
        "Wall": PageStatus.NO_TARGET,
        "Gate": PageStatus.TO_CREATE,
    }
    confirm.assert_called_once()
    assert sorted(store.saved) == ["Gate", "Keep"]
    assert store.summaries["Keep"] == "Update history to Alpha v1.1"
    assert "* Taller walls" in store.saved["Keep"]
    assert store.saved["Gate"].startswith("Gate.\n== History ==")
    assert store.saved["Gate"].endswith("<!--END HISTORY-->\n[[Category:Gates]]")
    assert report.ok


def test_second_run_is_a_no_op(pages, cfg):
    store = FakeStore(pages)
    _run(store, cfg)
    store.saved.clear()

    report, confirm = _run(store, cfg)
    assert report.pending == []
    confirm.assert_not_called()
    assert store.saved == {}


def test_declined_confirmation_writes_nothing(pages, cfg):
    store = FakeStore(pages)
    report, _ = _run(store, cfg, answer=False)
    assert report.declined
    assert store.saved == {}
    assert report.outcomes == {}


def test_dry_run_never_prompts(pages, cfg):
    store = FakeStore(pages)
    report, confirm = _run(store, cfg, dry_run=True)
    confirm.assert_not_called()
    assert report.pending == ["Gate", "Keep"]
    assert store.saved == {}


def test_force_update_rewrites_up_to_date_pages(pages, cfg):
    store = FakeStore(pages)
    cfg = Config(username="Bot", password="pw", force_update=True, request_interval=0)
    report, _ = _run(store, cfg)
    assert report.classifications["Tower"].status == PageStatus.TO_UPDATE
    assert "Tower" in store.saved


def test_only_pages_restricts_run(pages, cfg):
    store = FakeStore(pages)
    report, _ = _run(store, cfg, only_pages=["Keep", "Nowhere"])
    assert list(report.classifications) == ["Keep"]
    assert list(store.saved) == ["Keep"]


def test_write_failure_does_not_stop_other_pages(pages, cfg):
    store = FakeStore(pages, fail_saves={"Gate"})
    report, _ = _run(store, cfg)
    assert report.outcomes["Keep"].ok
    assert not report.outcomes["Gate"].ok
    assert "protectedpage" in report.outcomes["Gate"].error
    assert report.failures() == [("Gate", "protectedpage")]
    assert not report.ok


def test_page_changed_since_classification_is_a_failure(pages, cfg):
    store = FakeStore(pages)
    real_fetch = store.fetch_page

    def edited_meanwhile(title):
        if title == "Keep":
            return "Someone removed the history block."
        return real_fetch(title)

    store.fetch_page = edited_meanwhile
    report, _ = _run(store, cfg)
    assert not report.outcomes["Keep"].ok
    assert "begin marker" in report.outcomes["Keep"].error
    assert "Keep" not in store.saved
    assert "Gate" in store.saved


def test_failed_batch_only_affects_its_pages(pages, cfg):
    store = FakeStore(pages, batch_size=2, fail_batches_with={"Castle"})
    report, _ = _run(store, cfg)
    # sorted titles: Castle, Gate | Keep, Tower | Wall
    assert set(report.fetch_failures) == {"Castle", "Gate"}
    assert "Gate" not in report.classifications
    assert list(store.saved) == ["Keep"]
    assert not report.ok


def test_batch_progress_counts_pages(pages, timeline, make_change_sets):
    change_sets = make_change_sets(*[(c.version_label, c.page, c.text) for c in CHANGES])
    store = FakeStore(pages, batch_size=2)
    seen = []
    changelog_sync_bot.classify_pages(
        store, change_sets, timeline, PacedPool(1, 0),
        on_progress=lambda d, t: seen.append((d, t)),
    )
    # five pages in batches of 2, 2 and 1
    assert len(seen) == 3
    assert {t for _, t in seen} == {5}
    assert seen[-1] == (5, 5)


def test_single_page_store(pages, cfg):
    store = SinglePageStore(pages, broken={"Wall"})
    report, _ = _run(store, cfg)
    assert report.classifications["Keep"].status == PageStatus.TO_UPDATE
    assert "Wall" in report.fetch_failures
    assert sorted(store.saved) == ["Gate", "Keep"]


def test_malformed_meta_does_not_stop_run(pages, cfg):
    pages["Tower"] = "<!--BEGIN HISTORY-->\n<!--HISTORY META: ???-->\n<!--END HISTORY-->"
    pages["Castle"] = "{{NAW Changelist}}"
    store = FakeStore(pages)
    report, _ = _run(store, cfg)
    assert report.classifications["Tower"].status == PageStatus.NO_META
    assert "Castle" in store.saved


def test_unchanged_text_is_not_saved(cfg):
    store = FakeStore({"Keep": "{{NAW Changelist}}"})
    changes = [ChangeEntry("Keep", "Alpha v1.1", "Taller walls")]
    changelog_sync_bot.reconcile(VERSION_ROWS, changes, store, cfg, confirm=lambda m: True,
                                 show_progress=False)
    first = store.saved["Keep"]

    forced = Config(username="Bot", password="pw", force_update=True, request_interval=0)
    store.saved.clear()
    report = changelog_sync_bot.reconcile(VERSION_ROWS, changes, store, forced,
                                          confirm=lambda m: True, show_progress=False)
    assert store.pages["Keep"] == first
    assert store.saved == {}
    assert report.outcomes["Keep"].ok and not report.outcomes["Keep"].changed


def test_orphaned_change_aborts_before_fetch(cfg):
    store = MagicMock()
    with pytest.raises(OrphanedVersionError):
        changelog_sync_bot.reconcile(
            VERSION_ROWS, [ChangeEntry("Castle", "Beta v0.1", "x")], store, cfg, show_progress=False
        )
    store.fetch_pages.assert_not_called()


def test_empty_versions_abort(cfg):
    with pytest.raises(EmptyChangelogError):
        changelog_sync_bot.reconcile([], [], FakeStore({}), cfg, show_progress=False)


def test_log_file_gets_one_line_per_push(pages, cfg, tmp_path):
    log = tmp_path / "sync.log"
    _run(FakeStore(pages, fail_saves={"Gate"}), cfg, log_file=str(log))
    entries = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    by_title = {e["title"]: e for e in entries}
    assert by_title["Keep"]["status"] == "saved"
    assert by_title["Gate"]["status"] == "error"
    assert "ts_utc" in by_title["Gate"]


class TestMain:
    def _config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"username": "Bot", "password": "pw", "request_interval": 0}),
                        encoding="utf-8")
        return str(path)

    def test_config_error_exits_before_network(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WIKI_USERNAME", raising=False)
        monkeypatch.delenv("WIKI_PASSWORD", raising=False)
        with patch("changelog_sync_bot.make_site") as make_site:
            code = changelog_sync_bot.main(["--config", str(tmp_path / "missing.json")])
        assert code == 2
        make_site.assert_not_called()

    def test_full_run_with_yes(self, tmp_path, pages):
        store = FakeStore(pages)
        with patch("changelog_sync_bot.make_site"), \
             patch("changelog_sync_bot.PageStore", return_value=store), \
             patch("changelog_sync_bot.cargo_source.fetch_versions", return_value=VERSION_ROWS), \
             patch("changelog_sync_bot.cargo_source.fetch_changes", return_value=CHANGES):
            code = changelog_sync_bot.main(["--config", self._config(tmp_path), "--yes"])
        assert code == 0
        assert sorted(store.saved) == ["Gate", "Keep"]

    def test_failures_set_exit_status(self, tmp_path, pages):
        store = FakeStore(pages, fail_saves={"Keep"})
        with patch("changelog_sync_bot.make_site"), \
             patch("changelog_sync_bot.PageStore", return_value=store), \
             patch("changelog_sync_bot.cargo_source.fetch_versions", return_value=VERSION_ROWS), \
             patch("changelog_sync_bot.cargo_source.fetch_changes", return_value=CHANGES):
            code = changelog_sync_bot.main(["--config", self._config(tmp_path), "--yes"])
        assert code == 1

    def test_declined_prompt(self, tmp_path, pages, monkeypatch):
        store = FakeStore(pages)
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        with patch("changelog_sync_bot.make_site"), \
             patch("changelog_sync_bot.PageStore", return_value=store), \
             patch("changelog_sync_bot.cargo_source.fetch_versions", return_value=VERSION_ROWS), \
             patch("changelog_sync_bot.cargo_source.fetch_changes", return_value=CHANGES):
            code = changelog_sync_bot.main(["--config", self._config(tmp_path)])
        assert code == 0
        assert store.saved == {}
