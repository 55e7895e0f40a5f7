"""
history_markers.py
==================
Wikitext markers that delimit the bot-managed history section of a page.

    {{NAW Changelist}}                   placeholder where a new section goes
    <!--BEGIN HISTORY-->                 opens the bot-managed region
    <!--HISTORY META: Alpha v1.2-->      version the region was rendered for
    <!--END HISTORY-->                   closes the bot-managed region

The version label grammar is: word characters, optional spaces, "v", digits,
".", digits.
"""

import re

PLACEHOLDER  = "{{NAW Changelist}}"
BEGIN_MARKER = "<!--BEGIN HISTORY-->"
END_MARKER   = "<!--END HISTORY-->"

META_PREFIX = "<!--HISTORY META: "
META_SUFFIX = "-->"
META_RE     = re.compile(r"<!--HISTORY META: (\w* *v\d+\.\d+)-->")


def has_placeholder(text):
    return PLACEHOLDER in text


def has_history_block(text):
    return BEGIN_MARKER in text


def extract_version_label(text):
    """Return the label of the first version marker in *text*, or None."""
    m = META_RE.search(text or "")
    return m.group(1) if m else None


def version_marker(label):
    return f"{META_PREFIX}{label}{META_SUFFIX}"
