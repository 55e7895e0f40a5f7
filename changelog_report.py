"""Console output: page overview grid, progress counter and run summary."""

import sys

from page_classifier import PageStatus

STATUS_TAGS = {
    PageStatus.NO_EXIST:   "MISSING",
    PageStatus.NO_TARGET:  "NOTARGET",
    PageStatus.NO_META:    "NOMETA",
    PageStatus.TO_CREATE:  "CREATE",
    PageStatus.TO_UPDATE:  "UPDATE",
    PageStatus.UP_TO_DATE: "OK",
}
STATUS_LABELS = {
    PageStatus.NO_EXIST:   "Does not exist",
    PageStatus.NO_TARGET:  "No Target",
    PageStatus.NO_META:    "No Meta Tag",
    PageStatus.TO_CREATE:  "Pending Creation",
    PageStatus.TO_UPDATE:  "Pending Update",
    PageStatus.UP_TO_DATE: "Up To Date",
}
FETCH_FAILED_TAG = "ERROR"
TAG_WIDTH = max(len(t) for t in [*STATUS_TAGS.values(), FETCH_FAILED_TAG])
OVERVIEW_TITLE = "-- PAGE CHANGE OVERVIEW --"


def legend():
    return "  ".join(f"{STATUS_TAGS[s]}={STATUS_LABELS[s]}" for s in PageStatus)


def overview_cell(change_set, classification, max_page_length):
    name = change_set.page[:max_page_length].ljust(max_page_length + 2)
    tag = STATUS_TAGS[classification.status] if classification else FETCH_FAILED_TAG
    return f"{change_set.change_count:>2} - {tag:<{TAG_WIDTH}} {name}"


def format_overview(change_sets, classifications, columns=3, max_page_length=26):
    """Lines of the overview grid; pages in sorted order, *columns* per line."""
    cell_width = max_page_length + TAG_WIDTH + 8
    lines = ["", OVERVIEW_TITLE.center(columns * cell_width).rstrip(), legend()]
    row = []
    for page in sorted(change_sets):
        row.append(overview_cell(change_sets[page], classifications.get(page), max_page_length))
        if len(row) == columns:
            lines.append("".join(row).rstrip())
            row = []
    if row:
        lines.append("".join(row).rstrip())
    return lines


def status_counts(classifications):
    counts = {s: 0 for s in PageStatus}
    for c in classifications.values():
        counts[c.status] += 1
    return counts


class ConsoleProgress:
    """on_progress(completed, total) sink that rewrites one console line."""

    def __init__(self, message, stream=None):
        self.message = message
        self.stream = stream or sys.stdout

    def __call__(self, completed, total):
        self.stream.write(f"\r[INFO] {self.message} {completed}/{total}")
        if completed >= total:
            self.stream.write("\n")
        self.stream.flush()


def format_summary(report):
    lines = ["", "=" * 60, "Run summary", "=" * 60]
    counts = status_counts(report.classifications)
    for status in PageStatus:
        lines.append(f"{STATUS_LABELS[status]:<18}{counts[status]:>5}")
    if report.fetch_failures:
        lines.append(f"{'Fetch failed':<18}{len(report.fetch_failures):>5}")

    if report.declined:
        lines.append("Upload declined; no pages were changed.")
    elif report.outcomes:
        pushed = [o for o in report.outcomes.values() if o.ok]
        lines.append(f"{'Pushed':<18}{len(pushed):>5}")
        lines.append(f"{'Push failed':<18}{len(report.outcomes) - len(pushed):>5}")

    failures = report.failures()
    if failures:
        lines.append("")
        lines.append("Failed pages:")
        for page, error in failures:
            lines.append(f"  ! [[{page}]]: {error}")
    return lines
