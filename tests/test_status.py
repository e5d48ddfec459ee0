"""Tests for porcelain v2 status parsing."""

from groves.workspaces.status import parse_porcelain_v2

CLEAN = """\
# branch.oid 1234567890abcdef1234567890abcdef12345678
# branch.head PROJ-1
# branch.upstream origin/main
# branch.ab +0 -0
"""


class TestParsePorcelainV2:

    def test_clean(self):
        st = parse_porcelain_v2(CLEAN)
        assert st.branch == "PROJ-1"
        assert st.upstream == "origin/main"
        assert st.head == "1234567"
        assert not st.dirty
        assert (st.ahead, st.behind) == (0, 0)
        assert st.changed_files == []

    def test_ahead_behind(self):
        st = parse_porcelain_v2(CLEAN.replace("+0 -0", "+3 -2"))
        assert (st.ahead, st.behind) == (3, 2)

    def test_counts_each_entry_kind(self):
        out = CLEAN + "\n".join([
            "1 M. N... 100644 100644 100644 abc abc staged.txt",
            "1 .M N... 100644 100644 100644 abc abc unstaged.txt",
            "1 MM N... 100644 100644 100644 abc abc both.txt",
            "u UU N... 100644 100644 100644 100644 a b c conflict.txt",
            "? new.txt",
        ]) + "\n"
        st = parse_porcelain_v2(out)
        assert st.dirty
        assert st.staged == 2
        assert st.unstaged == 2
        assert st.unmerged == 1
        assert st.untracked == 1
        assert len(st.changed_files) == 5

    def test_detached_keeps_fallback_branch(self):
        out = "# branch.oid 1234567890\n# branch.head (detached)\n"
        st = parse_porcelain_v2(out, fallback_branch="PROJ-1")
        assert st.detached
        assert st.branch == "PROJ-1"
        assert st.upstream == ""

    def test_initial_commit(self):
        st = parse_porcelain_v2("# branch.oid (initial)\n# branch.head main\n")
        assert st.head_missing
        assert st.head == ""
