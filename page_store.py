"""
page_store.py
=============
Reads and writes page wikitext through mwclient.

fetch_pages() asks for up to `batch_size` titles per API call; fetch_page()
is the one-title read used right before a write, and save_page() edits the
same mwclient.Page it read. A missing page is returned as None.
"""

import threading
import urllib.parse

import mwclient
import requests
from requests.adapters import HTTPAdapter

DEFAULT_BATCH_SIZE = 50


def make_session(max_workers):
    """requests session whose pool fits every worker thread."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max(10, max_workers))
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def make_site(api_url, username, password, user_agent, max_workers=4):
    p = urllib.parse.urlparse(api_url)
    site = mwclient.Site(
        p.netloc,
        path=p.path.rsplit("/api.php", 1)[0] + "/",
        scheme=p.scheme or "https",
        pool=make_session(max_workers),
        clients_useragent=user_agent,
    )
    site.login(username, password)
    return site


def chunked(titles, size):
    titles = list(titles)
    return [tuple(titles[i:i + size]) for i in range(0, len(titles), size)]


class PageStore:
    def __init__(self, site, batch_size=DEFAULT_BATCH_SIZE):
        self.site = site
        self.batch_size = batch_size
        # title -> mwclient.Page last read by fetch_page()
        self._open = {}
        self._lock = threading.Lock()

    def fetch_pages(self, titles):
        """Return {title: text or None} for one batch of titles."""
        titles = list(titles)
        data = self.site.api(
            "query",
            prop="revisions",
            rvprop="content",
            rvslots="main",
            titles="|".join(titles),
            formatversion="2",
        )
        query = data.get("query", {})
        # the API hands back normalised titles; map them to what we asked for
        renamed = {n["to"]: n["from"] for n in query.get("normalized", [])}

        found = {}
        for pg in query.get("pages", []):
            title = renamed.get(pg["title"], pg["title"])
            if pg.get("missing") or pg.get("invalid") or not pg.get("revisions"):
                found[title] = None
                continue
            found[title] = pg["revisions"][0]["slots"]["main"]["content"]

        missing = [t for t in titles if t not in found]
        if missing:
            raise KeyError(f"API response had no entry for: {', '.join(missing)}")
        return {t: found[t] for t in titles}

    def batches(self, titles):
        return chunked(titles, self.batch_size)

    def fetch_page(self, title):
        """Read *title* fresh; the Page is kept for the following save_page()."""
        page = self.site.pages[title]
        if not page.exists:
            with self._lock:
                self._open.pop(title, None)
            return None
        text = page.text(cache=False)
        with self._lock:
            self._open[title] = page
        return text

    def save_page(self, title, text, summary):
        """Write *text* through the Page fetch_page() read.

        mwclient sends that read's revision timestamp as basetimestamp, so
        an edit made by someone else in between comes back as an edit
        conflict instead of being overwritten.
        """
        with self._lock:
            page = self._open.pop(title, None)
        if page is None:
            raise RuntimeError(f"[[{title}]] must be read with fetch_page() before saving")
        return page.edit(text, summary=summary, bot=True)
