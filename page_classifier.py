"""
page_classifier.py
==================
Decides what a page needs from its current wikitext and its change set.

    NoExist   page is missing on the wiki
    NoTarget  neither a history block nor the {{NAW Changelist}} placeholder
    NoMeta    history block present, version marker missing or unknown
    ToCreate  placeholder present, no history block yet
    ToUpdate  history block is behind the page's newest change (or forced)
    UpToDate  nothing newer than the recorded version

The page text is the only record of what was last published, so classify()
depends on nothing but its arguments.
"""

from dataclasses import dataclass
from enum import Enum

import history_markers


class PageStatus(str, Enum):
    NO_EXIST  = "noExist"
    NO_TARGET = "noTarget"
    NO_META   = "noMeta"
    TO_CREATE = "toCreate"
    TO_UPDATE = "toUpdate"
    UP_TO_DATE = "upToDate"

    @property
    def needs_write(self):
        return self in WRITE_STATUSES


WRITE_STATUSES = frozenset({PageStatus.TO_CREATE, PageStatus.TO_UPDATE})


@dataclass(frozen=True)
class PageClassification:
    page: str
    status: PageStatus
    recorded_ordinal: int | None = None


def classify(page, live_text, change_set, timeline, force_update=False):
    """Classify *page*; *live_text* is None when the wiki reports it missing."""
    if live_text is None:
        return PageClassification(page, PageStatus.NO_EXIST)

    if not history_markers.has_history_block(live_text):
        if not history_markers.has_placeholder(live_text):
            return PageClassification(page, PageStatus.NO_TARGET)
        return PageClassification(page, PageStatus.TO_CREATE)

    label = history_markers.extract_version_label(live_text)
    if label is None:
        return PageClassification(page, PageStatus.NO_META)

    # a renamed or deleted version is as unusable as a missing marker
    recorded = timeline.ordinal_of(label)
    if recorded is None:
        return PageClassification(page, PageStatus.NO_META)

    if force_update:
        return PageClassification(page, PageStatus.TO_UPDATE, recorded)

    if any(o > recorded for o in change_set.changes_by_ordinal):
        return PageClassification(page, PageStatus.TO_UPDATE, recorded)
    return PageClassification(page, PageStatus.UP_TO_DATE, recorded)
