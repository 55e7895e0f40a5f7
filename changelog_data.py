"""
changelog_data.py
=================
Turns the raw Cargo rows into the structures the reconciliation works on:

 1. build_timeline()     – (label, timeindex) rows → ordered Version timeline
 2. aggregate_changes()  – (page, label, text) rows → {page: PageChangeSet}

Both are built once per run and never mutated afterwards.
"""

from dataclasses import dataclass, field
from types import MappingProxyType


class ChangelogDataError(ValueError):
    """Changelog rows are inconsistent; nothing downstream can be trusted."""


class OrphanedVersionError(ChangelogDataError):
    def __init__(self, label, page=None):
        self.label = label
        self.page = page
        where = f" (affected page [[{page}]])" if page else ""
        super().__init__(
            f"Change entry references version {label!r}{where}, "
            "which is not in the Versions table"
        )


class EmptyChangelogError(ChangelogDataError):
    def __init__(self):
        super().__init__("No versions found in the changelog; nothing to reconcile")


@dataclass(frozen=True)
class Version:
    label: str
    ordinal: int
    time_index: float = 0


@dataclass(frozen=True)
class ChangeEntry:
    page: str
    version_label: str
    text: str


@dataclass(frozen=True)
class Timeline:
    versions: tuple
    ordinals: MappingProxyType = field(repr=False)

    def __len__(self):
        return len(self.versions)

    def __bool__(self):
        return bool(self.versions)

    @property
    def latest(self):
        if not self.versions:
            raise EmptyChangelogError()
        return self.versions[-1]

    def ordinal_of(self, label):
        """Ordinal for *label*, or None when the label is unknown."""
        return self.ordinals.get(label)


@dataclass(frozen=True)
class PageChangeSet:
    page: str
    changes_by_ordinal: MappingProxyType

    @property
    def change_count(self):
        return sum(len(v) for v in self.changes_by_ordinal.values())

    def changes_at(self, ordinal):
        return self.changes_by_ordinal.get(ordinal, ())


def build_timeline(rows):
    """Order (label, time_index) rows into a Timeline.

    The sort is stable, so versions sharing a time index keep their input
    order. A label appearing twice is rejected since it would map to two
    ordinals.
    """
    rows = [(label, _time_key(ti)) for label, ti in rows]
    ordered = sorted(rows, key=lambda r: r[1])

    versions, ordinals = [], {}
    for ordinal, (label, ti) in enumerate(ordered):
        if label in ordinals:
            raise ChangelogDataError(f"Version {label!r} is listed more than once")
        ordinals[label] = ordinal
        versions.append(Version(label=label, ordinal=ordinal, time_index=ti))
    return Timeline(versions=tuple(versions), ordinals=MappingProxyType(ordinals))


def _time_key(value):
    # Cargo hands numbers back as strings
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ChangelogDataError(f"Unusable timeindex {value!r}") from None


def aggregate_changes(entries, timeline):
    """Group ChangeEntry records by page, then by version ordinal.

    Entries inside one (page, ordinal) bucket keep the order they arrived in.
    An entry whose version is not in *timeline* raises OrphanedVersionError.
    """
    buckets = {}
    for entry in entries:
        ordinal = timeline.ordinal_of(entry.version_label)
        if ordinal is None:
            raise OrphanedVersionError(entry.version_label, entry.page)
        buckets.setdefault(entry.page, {}).setdefault(ordinal, []).append(entry.text)

    return {
        page: PageChangeSet(
            page=page,
            changes_by_ordinal=MappingProxyType(
                {o: tuple(texts) for o, texts in by_ordinal.items()}
            ),
        )
        for page, by_ordinal in buckets.items()
    }
