"""
cargo_source.py
===============
Reads the changelog tables from the wiki's Cargo store.

    Versions  one row per version page:  _pageName, timeindex
    Changes   one row per change:        _pageName (version), affected, changed

Cargo caps every query, so rows are read page by page with limit/offset
until an empty page comes back. The wiki may cap a page below the limit we
ask for ($wgCargoMaxQueryLimit), so a short page does not mean the end.
"""

from changelog_data import ChangeEntry

CARGO_PAGE_SIZE = 500

VERSIONS_TABLE  = "Versions"
VERSIONS_FIELDS = "_pageName=version,timeindex"
CHANGES_TABLE   = "Changes"
CHANGES_FIELDS  = "_pageName=version,affected,changed"

# _ID keeps rows of one version in the order they were stored and makes
# offset paging deterministic
VERSIONS_ORDER  = "Versions._pageName,Versions._ID"
CHANGES_ORDER   = "Changes._pageName,Changes._ID"


def cargo_rows(site, tables, fields, page_size=CARGO_PAGE_SIZE, **extra):
    """Yield the `title` dict of every row the query matches."""
    offset = 0
    while True:
        data = site.api(
            "cargoquery",
            tables=tables,
            fields=fields,
            limit=str(page_size),
            offset=str(offset),
            formatversion="2",
            **extra,
        )
        rows = data.get("cargoquery", [])
        for row in rows:
            yield row["title"]
        if not rows:
            break
        offset += len(rows)


def fetch_versions(site, page_size=CARGO_PAGE_SIZE):
    """Return [(label, timeindex)] in table order."""
    return [
        (r["version"], r["timeindex"])
        for r in cargo_rows(site, VERSIONS_TABLE, VERSIONS_FIELDS, page_size,
                            order_by=VERSIONS_ORDER)
    ]


def fetch_changes(site, page_size=CARGO_PAGE_SIZE):
    """Return [ChangeEntry] in table order."""
    return [
        ChangeEntry(page=r["affected"], version_label=r["version"], text=r["changed"])
        for r in cargo_rows(site, CHANGES_TABLE, CHANGES_FIELDS, page_size,
                            order_by=CHANGES_ORDER)
    ]
