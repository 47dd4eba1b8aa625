from pathlib import Path

from orgai.analysis import iter_hunks, open_diff_report, patch_selected, shadow_diff, shadow_pairs
from orgai.session import Session
from orgai.shadow import ShadowFileManager

ORIGINAL = "one\ntwo\nthree\nfour\n"
MODIFIED = "one\n2\nthree\nfour\nfive\n"

def test_iter_hunks():
    hunks = list(iter_hunks(ORIGINAL, MODIFIED))
    assert [h.tag for h in hunks] == ["replace", "insert"]
    assert hunks[0].original_start == 1
    assert hunks[0].original == ["two\n"]
    assert hunks[0].modified == ["2\n"]
    assert hunks[1].modified == ["five\n"]

def test_iter_hunks_identical():
    assert list(iter_hunks(ORIGINAL, ORIGINAL)) == []

def test_patch_selected_all_or_nothing():
    assert patch_selected(ORIGINAL, MODIFIED, lambda h: True) == MODIFIED
    assert patch_selected(ORIGINAL, MODIFIED, lambda h: False) == ORIGINAL

def test_patch_selected_partial():
    merged = patch_selected(ORIGINAL, MODIFIED, lambda h: h.tag == "insert")
    assert merged == "one\ntwo\nthree\nfour\nfive\n"

def test_patch_selected_delete():
    assert patch_selected(ORIGINAL, "one\nfour\n", lambda h: True) == "one\nfour\n"

class TestShadowDiff:
    def test_unified_diff(self, project):
        session = Session.open(project, "*.py")
        ShadowFileManager(project).persist(session, "a.py", "print(2)\n")
        diff = shadow_diff(session, "a.py")
        assert diff.startswith("--- a/a.py\n+++ b/a.py\n")
        assert "-print(1)\n" in diff
        assert "+print(2)\n" in diff

    def test_new_file_diffs_against_empty(self, project):
        session = Session.open(project, "*.py")
        ShadowFileManager(project).persist(session, "c.py", "c = 1\n")
        assert "+c = 1\n" in shadow_diff(session, "c.py")

    def test_no_shadow(self, project):
        assert shadow_diff(Session.open(project, "*.py"), "a.py") == ""

    def test_pairs_are_sorted(self, project):
        session = Session.open(project, "*.py")
        shadows = ShadowFileManager(project)
        shadows.persist(session, "b.py", "b\n")
        shadows.persist(session, "a.py", "a\n")
        assert [name for name, _, _ in shadow_pairs(session)] == ["a.py", "b.py"]
        assert shadow_pairs(session)[0][1] == Path(session.base_dir) / "a.py"

def test_open_diff_report(project, monkeypatch):
    opened = []
    monkeypatch.setattr("orgai.analysis.webbrowser.open", opened.append)
    session = Session.open(project, "*.py")
    ShadowFileManager(project).persist(session, "a.py", "print(`2`)\n")

    path = open_diff_report(session)
    assert path is not None
    assert opened == [Path(path).as_uri()]
    html = Path(path).read_text(encoding="utf-8")
    assert "Diff2HtmlUI" in html
    assert "+print(\\`2\\`)" in html
    Path(path).unlink()

def test_diff_report_escapes_script_literal(project, monkeypatch):
    monkeypatch.setattr("orgai.analysis.webbrowser.open", lambda uri: None)
    session = Session.open(project, "*.py")
    ShadowFileManager(project).persist(session, "a.py", 'print("${x}\\\\n</script>")\n')

    path = open_diff_report(session)
    html = Path(path).read_text(encoding="utf-8")
    assert '+print("\\${x}\\\\\\\\n<\\/script>")' in html
    assert "</script>\")" not in html
    Path(path).unlink()
