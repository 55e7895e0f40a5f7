#!/usr/bin/env python3
"""
changelog_sync_bot.py
=====================
Keeps every page's "History" section in line with the Versions/Changes Cargo
tables.

 1. Read all versions and changes from Cargo, order the versions by timeindex
 2. Group the changes by affected page and version
 3. Fetch every affected page and classify it (see page_classifier)
 4. Print an overview and ask before touching the wiki
 5. For every page pending creation or update: re-fetch, splice in a freshly
    rendered history table and save it as a bot edit

A failed page never stops the others; the exit status is 1 if any page
failed to load or save.

Examples:
    python changelog_sync_bot.py --dry-run
    python changelog_sync_bot.py --page "Castle" --page "Moat" --yes
    python changelog_sync_bot.py --force-update --log-file sync.log
"""

import argparse
import datetime as dt
import json
import sys
from dataclasses import dataclass, field

from mwclient.errors import LoginError

import cargo_source
import changelog_report
from changelog_config import ConfigError, load_config
from changelog_data import ChangelogDataError, EmptyChangelogError, aggregate_changes, build_timeline
from history_splicer import OLDEST_FIRST, DEFAULT_TABLE_TITLE, splice_history
from page_classifier import classify
from paced_pool import PacedPool
from page_store import PageStore, make_site

CONFIRM_PROMPT = "Upload page changes to wiki?"
EDIT_SUMMARY   = "Update history to {label}"


@dataclass(frozen=True)
class PageOutcome:
    page: str
    ok: bool
    changed: bool = False
    error: str | None = None


@dataclass
class RunReport:
    classifications: dict = field(default_factory=dict)
    fetch_failures: dict = field(default_factory=dict)
    outcomes: dict = field(default_factory=dict)
    declined: bool = False

    @property
    def pending(self):
        return sorted(p for p, c in self.classifications.items() if c.status.needs_write)

    def failures(self):
        failed = [(p, e) for p, e in self.fetch_failures.items()]
        failed += [(p, o.error) for p, o in self.outcomes.items() if not o.ok]
        return sorted(failed)

    @property
    def ok(self):
        return not self.failures()


# ─── CHANGELOG ────────────────────────────────────────────────────

def load_changelog(version_rows, change_entries):
    """Return (timeline, {page: PageChangeSet}); raises on inconsistent data."""
    timeline = build_timeline(version_rows)
    if not timeline:
        raise EmptyChangelogError()
    return timeline, aggregate_changes(change_entries, timeline)


# ─── FETCH + CLASSIFY ─────────────────────────────────────────────

def _describe(error):
    code = getattr(error, "code", None)
    return f"{code}: {error}" if code else str(error) or type(error).__name__


def classify_pages(store, change_sets, timeline, pool, force_update=False, on_progress=None):
    """Return ({page: PageClassification}, {page: fetch error}).

    Stores with fetch_pages() are read in batches and classified once every
    batch is in; otherwise each page is fetched and classified on its own.
Progress is reported in pages either way.
    """
    titles = sorted(change_sets)
    classifications, failures = {}, {}

    if hasattr(store, "fetch_pages"):
        batches = store.batches(titles) if hasattr(store, "batches") else [tuple(titles)]
        outcomes = pool.map(store.fetch_pages, batches, on_progress=on_progress, weight=len)
        texts = {}
        for batch, outcome in outcomes.items():
            if outcome.ok:
                texts.update(outcome.value)
            else:
                failures.update({t: _describe(outcome.error) for t in batch})
        for title in titles:
            if title in texts:
                classifications[title] = classify(
                    title, texts[title], change_sets[title], timeline, force_update
                )
        return classifications, failures

    def fetch_and_classify(title):
        return classify(title, store.fetch_page(title), change_sets[title], timeline, force_update)

    for title, outcome in pool.map(fetch_and_classify, titles, on_progress=on_progress).items():
        if outcome.ok:
            classifications[title] = outcome.value
        else:
            failures[title] = _describe(outcome.error)
    return classifications, failures


# ─── PUSH ─────────────────────────────────────────────────────────

def push_page(store, classification, change_set, timeline, summary,
              change_order=OLDEST_FIRST, table_title=DEFAULT_TABLE_TITLE):
    """Re-fetch, splice and save one page; True when an edit was saved."""
    live_text = store.fetch_page(classification.page)
    new_text = splice_history(
        change_set, classification, live_text, timeline,
        change_order=change_order, table_title=table_title,
    )
    if new_text == live_text:
        return False
    store.save_page(classification.page, new_text, summary)
    return True


def push_pages(store, report, change_sets, timeline, pool,
               change_order=OLDEST_FIRST, table_title=DEFAULT_TABLE_TITLE, on_progress=None):
    summary = EDIT_SUMMARY.format(label=timeline.latest.label)

    def task(page):
        return push_page(store, report.classifications[page], change_sets[page], timeline,
                         summary, change_order, table_title)

    outcomes = {}
    for page, outcome in pool.map(task, report.pending, on_progress=on_progress).items():
        if outcome.ok:
            outcomes[page] = PageOutcome(page, ok=True, changed=outcome.value)
        else:
            outcomes[page] = PageOutcome(page, ok=False, error=_describe(outcome.error))
    return outcomes


def append_log(path, data):
    payload = dict(data)
    payload["ts_utc"] = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(payload, ensure_ascii=False) + "\n")


def print_outcomes(outcomes, log_file=None):
    for page, o in outcomes.items():
        if o.ok and o.changed:
            print(f"  • [[{page}]] pushed to wiki")
        elif o.ok:
            print(f"  • [[{page}]] nothing to save")
        else:
            print(f"  ! [[{page}]] push failed: {o.error}")
        if log_file:
            entry = {"title": page, "status": "saved" if o.changed else "unchanged" if o.ok else "error"}
            if o.error:
                entry["error"] = o.error
            append_log(log_file, entry)


# ─── RUN ──────────────────────────────────────────────────────────

def ask_confirmation(message=CONFIRM_PROMPT):
    try:
        response = input(f"{message} (yes/no): ").strip().lower()
    except EOFError:
        return False
    return response in ("yes", "y")


def reconcile(version_rows, change_entries, store, cfg, confirm=ask_confirmation,
              pool=None, only_pages=None, dry_run=False, log_file=None, show_progress=True):
    """Run one full reconciliation and return its RunReport."""
    timeline, change_sets = load_changelog(version_rows, change_entries)
    print(f"[INFO] {len(timeline)} versions, latest is {timeline.latest.label}; "
          f"{len(change_sets)} pages have changes")

    if only_pages:
        wanted = set(only_pages)
        for title in sorted(wanted - set(change_sets)):
            print(f"  ! [[{title}]] has no changelog entries, skipped")
        change_sets = {p: cs for p, cs in change_sets.items() if p in wanted}

    pool = pool or PacedPool(cfg.max_workers, cfg.request_interval)
    report = RunReport()

    print("[INFO] Retrieving Page Data...")
    progress = changelog_report.ConsoleProgress("Retrieved") if show_progress else None
    report.classifications, report.fetch_failures = classify_pages(
        store, change_sets, timeline, pool, cfg.force_update, progress
    )
    for title, error in sorted(report.fetch_failures.items()):
        print(f"  ! [[{title}]] could not be read: {error}")

    for line in changelog_report.format_overview(
        change_sets, report.classifications, cfg.columns, cfg.max_page_length
    ):
        print(line)

    if not report.pending:
        print("[INFO] Every page is up to date; nothing to push.")
        return report
    if dry_run:
        print(f"[INFO] Dry run: {len(report.pending)} pages would be pushed.")
        return report
    if not confirm(CONFIRM_PROMPT):
        report.declined = True
        print("Aborted by user.")
        return report

    progress = changelog_report.ConsoleProgress("Pushing") if show_progress else None
    report.outcomes = push_pages(
        store, report, change_sets, timeline, pool,
        change_order=cfg.change_order, table_title=cfg.table_title, on_progress=progress,
    )
    print_outcomes(report.outcomes, log_file)
    return report


def build_parser():
    parser = argparse.ArgumentParser(description="Sync page history sections with the Cargo changelog.")
    parser.add_argument("--config", default="config.json", help="Path to the JSON config file.")
    parser.add_argument("--force-update", action="store_true", default=None,
                        help="Rewrite every page that has a history block.")
    parser.add_argument("--dry-run", action="store_true", help="Classify and show the overview only.")
    parser.add_argument("--yes", action="store_true", help="Do not ask before uploading.")
    parser.add_argument("--page", action="append", default=[], help="Only process this page (repeatable).")
    parser.add_argument("--log-file", default="", help="Append a JSON line per pushed page to this file.")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config, force_update=args.force_update)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    print("Using bot username: " + cfg.username)
    try:
        site = make_site(cfg.api_url, cfg.username, cfg.password, cfg.user_agent, cfg.max_workers)
    except LoginError as e:
        print(f"Login failed: {e}", file=sys.stderr)
        return 2

    print("[INFO] Retrieving Changelog Data...")
    version_rows = cargo_source.fetch_versions(site)
    change_entries = cargo_source.fetch_changes(site)

    confirm = (lambda _message: True) if args.yes else ask_confirmation
    try:
        report = reconcile(
            version_rows, change_entries, PageStore(site, cfg.batch_size), cfg,
            confirm=confirm, only_pages=args.page, dry_run=args.dry_run,
            log_file=args.log_file or None,
        )
    except ChangelogDataError as e:
        print(f"Changelog data error: {e}", file=sys.stderr)
        return 1

    for line in changelog_report.format_summary(report):
        print(line)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
