"""Shared fixtures: a small zoned corpus on disk and an engine over it."""

import os
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from notestack.search import SearchEngine
from notestack.zones import ZoneLayout

NOW = datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc)
YESTERDAY = (NOW - timedelta(days=1)).timestamp()


def write_note(root: Path, rel: str, content: str, mtime: float | None = YESTERDAY) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture()
def corpus(tmp_path: Path) -> Path:
    """One or more notes in every zone."""
    write_note(tmp_path, "notes/widgets.md", """\
        ---
        title: Widgets
        tags: [design]
        ---
        Widgets are small components.

        More on widgets.
    """)
    write_note(tmp_path, "notes/widgets-overview.md", """\
        ---
        title: Widgets Overview
        tags: [design, overview]
        ---
        An overview of all widget types. See [[widgets]].
    """)
    write_note(tmp_path, "notes/gadgets.md", """\
        ---
        title: Gadgets
        tags: [hardware]
        ---
        Gadgets pair well with other parts in practice.
    """)
    write_note(tmp_path, "daily/2025-01-19.md", """\
        # 2025-01-19

        - [ ] fix it #actionable #high
        - [x] shipped release notes
    """)
    write_note(tmp_path, "maps/design-map.md", """\
        # Design Map

        #design hub linking [[widgets]] and [[gadgets]].
    """)
    write_note(tmp_path, "inbox/quick/idea.md", "Quick idea about #design\n", mtime=YESTERDAY - 3600)
    write_note(tmp_path, "inbox/voice/memo.md", "Voice memo transcript\n", mtime=YESTERDAY - 7200)
    write_note(tmp_path, "scratch.md", "# Scratch\n\nscratch widgets thoughts\n")
    write_note(tmp_path, "archive/old-widgets.md", """\
        ---
        title: Old Widgets
        tags: [design, legacy]
        ---
        Retired widgets.
    """)
    return tmp_path


@pytest.fixture()
def layout(corpus: Path) -> ZoneLayout:
    return ZoneLayout.from_root(corpus)


@pytest.fixture()
def engine(layout: ZoneLayout) -> SearchEngine:
    return SearchEngine(layout, clock=lambda: NOW)
