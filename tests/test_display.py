import io

from retrospective.display import Display, ProjectProgress, clean_project_name


def test_clean_project_name(monkeypatch):
    monkeypatch.setenv("HOME", "/home/alice")
    assert clean_project_name("-home-alice") == "~"
    assert clean_project_name("-home-alice-ws-proj") == "proj"
    assert clean_project_name("-home-alice-notes") == "notes"
    assert clean_project_name("-tmp-other") == "-tmp-other"


def test_print_active_then_completed(monkeypatch):
    monkeypatch.setenv("HOME", "/home/alice")
    stream = io.StringIO()
    display = Display(stream)
    progress = ProjectProgress(
        name="-home-alice-ws-proj", total=5, handled=3, skipped=1, interesting=2, learnings=4
    )

    display.print_active(progress)
    active = stream.getvalue()
    assert active.startswith("\x1b[2K\r  proj ")
    assert active.endswith("3/5 | 1 skipped | 2 interesting | 4 learnings")
    assert display.has_active_line is True

    display.print_completed(progress)
    completed = stream.getvalue()[len(active):]
    assert completed.startswith("\x1b[2K\r\u2713 proj ")
    assert completed.endswith("  5 conv    1 skipped    2 interesting    4 learnings\n")
    assert display.has_active_line is False


def test_completed_without_active_line_has_no_clear():
    stream = io.StringIO()
    display = Display(stream)
    display.print_completed(ProjectProgress(name="-x-project", total=1))
    line = stream.getvalue()
    assert line.startswith("\u2713 -x-project")
    assert "\x1b[2K" not in line
    assert len(line.split(" conv")[0]) == len("\u2713 ") + 30 + 4