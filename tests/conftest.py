"""Shared fixtures: a small changelog and in-memory page stores."""
import os
import sys

import pytest

# The bot modules live at the repository root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from changelog_data import ChangeEntry, aggregate_changes, build_timeline
from page_store import chunked


VERSION_ROWS = [("Alpha v1.0", "0"), ("Alpha v1.1", "1")]


class FakeStore:
    """Batch-capable page store backed by a dict; None means missing."""

    def __init__(self, pages, batch_size=2, fail_saves=(), fail_batches_with=()):
        self.pages = dict(pages)
        self.batch_size = batch_size
        self.fail_saves = set(fail_saves)
        self.fail_batches_with = set(fail_batches_with)
        self.saved = {}
        self.summaries = {}

    def batches(self, titles):
        return chunked(titles, self.batch_size)

    def fetch_pages(self, titles):
        if self.fail_batches_with & set(titles):
            raise ConnectionError("read timed out")
        return {t: self.pages.get(t) for t in titles}

    def fetch_page(self, title):
        return self.pages.get(title)

    def save_page(self, title, text, summary):
        if title in self.fail_saves:
            raise RuntimeError("protectedpage")
        self.saved[title] = text
        self.summaries[title] = summary
        self.pages[title] = text
        return {"result": "Success"}


class SinglePageStore:
    """Store without a batch read; pages in `broken` fail to load."""

    def __init__(self, pages, broken=()):
        self.pages = dict(pages)
        self.broken = set(broken)
        self.saved = {}

    def fetch_page(self, title):
        if title in self.broken:
            raise ConnectionError("connection reset")
        return self.pages.get(title)

    def save_page(self, title, text, summary):
        self.saved[title] = text
        self.pages[title] = text


@pytest.fixture
def timeline():
    return build_timeline(VERSION_ROWS)


@pytest.fixture
def make_change_sets(timeline):
    def _make(*triples):
        entries = [ChangeEntry(page=p, version_label=v, text=t) for v, p, t in triples]
        return aggregate_changes(entries, timeline)
    return _make


def history_page(label, before="Intro text.\n", after="\n[[Category:Buildings]]\n"):
    """Page text with an existing history block recorded at *label*."""
    return (
        before
        + "<!--BEGIN HISTORY-->\n"
        + f"<!--HISTORY META: {label}-->\n"
        + "{| old table |}\n"
        + "<!--END HISTORY-->"
        + after
    )


@pytest.fixture(name="history_page")
def history_page_fixture():
    return history_page
