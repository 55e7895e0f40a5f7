"""
history_splicer.py
==================
Renders the history table for one page and splices it into the page text.

Only the bot-managed region changes:
  • toCreate – the {{NAW Changelist}} placeholder is replaced by a heading,
    an editor note and a fresh history block
  • toUpdate – everything between <!--BEGIN HISTORY--> and <!--END HISTORY-->
    (markers included) is replaced by a fresh history block
Text before and after the region is carried over byte for byte.
"""

import history_markers
from page_classifier import PageStatus

OLDEST_FIRST = "oldest-first"
NEWEST_FIRST = "newest-first"
CHANGE_ORDERS = (OLDEST_FIRST, NEWEST_FIRST)

DEFAULT_TABLE_TITLE = "Nations at War"

SECTION_INTRO = (
    "== History ==\n"
    "<!--\n"
    "EDITOR NOTE:\n"
    "Do NOT edit the follow history section as it is generated by a bot.\n"
    "If there are any issues, please contact a wiki administrator on discord.\n"
    "-->"
)

TABLE_OPEN  = '{{|class="wikitable" style="width:90%; margin:auto"|\n!colspan="2"|[[{title}]]'
TABLE_ROW   = '\n|-\n|style="text-align:center;width:20%"|[[{label}]]||style="width:80%"|\n{bullets}'
TABLE_CLOSE = "\n|}\n"


class SpliceError(RuntimeError):
    """The page no longer has the markers its classification relied on."""

    def __init__(self, page, message):
        self.page = page
        super().__init__(f"[[{page}]]: {message}")


def render_history_block(change_set, timeline, change_order=OLDEST_FIRST,
                         table_title=DEFAULT_TABLE_TITLE):
    """Return the full history block, begin and end markers included."""
    if change_order not in CHANGE_ORDERS:
        raise ValueError(f"Unknown change order {change_order!r}")

    parts = [
        history_markers.BEGIN_MARKER,
        "\n",
        history_markers.version_marker(timeline.latest.label),
        "\n",
        TABLE_OPEN.format(title=table_title),
    ]
    for version in timeline.versions:
        texts = change_set.changes_at(version.ordinal)
        if not texts:
            continue
        if change_order == NEWEST_FIRST:
            texts = texts[::-1]
        bullets = "\n".join("* " + t for t in texts)
        parts.append(TABLE_ROW.format(label=version.label, bullets=bullets))
    parts.append(TABLE_CLOSE)
    parts.append(history_markers.END_MARKER)
    return "".join(parts)


def split_for_update(page, text):
    """Return (before, after) around the existing history block."""
    if history_markers.BEGIN_MARKER not in text:
        raise SpliceError(page, "history begin marker is gone")
    before, rest = text.split(history_markers.BEGIN_MARKER, 1)
    if history_markers.END_MARKER not in rest:
        raise SpliceError(page, "history end marker is missing")
    _old, after = rest.split(history_markers.END_MARKER, 1)
    return before, after


def split_for_create(page, text):
    """Return (before, after) around the placeholder, which is consumed."""
    if history_markers.PLACEHOLDER not in text:
        raise SpliceError(page, "changelist placeholder is gone")
    before, after = text.split(history_markers.PLACEHOLDER, 1)
    return before + SECTION_INTRO, after


def splice_history(change_set, classification, live_text, timeline,
                   change_order=OLDEST_FIRST, table_title=DEFAULT_TABLE_TITLE):
    """Return the new full text for *classification.page*.

    Raises SpliceError when *live_text* does not carry the markers the
    classification expects, or the classification is not a write status.
    """
    page = classification.page
    if live_text is None:
        raise SpliceError(page, "page no longer exists")

    if classification.status == PageStatus.TO_CREATE:
        before, after = split_for_create(page, live_text)
    elif classification.status == PageStatus.TO_UPDATE:
        before, after = split_for_update(page, live_text)
    else:
        raise SpliceError(page, f"nothing to splice for status {classification.status.value}")

    block = render_history_block(change_set, timeline, change_order, table_title)
    return before + block + after
