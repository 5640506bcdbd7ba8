import os

import pytest

from filecombine.collector import (
    CancellationToken,
    ExclusionRecord,
    FileCollector,
    SelectionRoot,
    relative_to_workspace,
    resolve_roots,
)
from filecombine.errors import OperationCancelled, SelectionError
from filecombine.fs import FileKind
from filecombine.ignore import GlobalExcluder
from filecombine.locator import IgnoreFileCache, IgnoreFileLocator


def make_collector(root, patterns=(), token=None, fs=None, max_workers=4):
    return FileCollector(
        root,
        GlobalExcluder(list(patterns)),
        IgnoreFileLocator(root, IgnoreFileCache(), fs),
        fs=fs,
        token=token,
        max_workers=max_workers,
    )


def collect(root, paths, **kwargs):
    roots, _ = resolve_roots(paths)
    return make_collector(root, **kwargs).collect(roots)


def rels(result):
    return [f.relative_path for f in result.files]


@pytest.fixture
def project(workspace):
    return workspace({
        ".gitignore": "build/\n*.tmp\n",
        "README.md": "# readme\n",
        "src/main.py": "print('hi')\n",
        "src/util.py": "x = 1\n",
        "src/cache.tmp": "junk",
        "src/vendor/.gitignore": "*.py\n!keep.py\n",
        "src/vendor/lib.py": "lib\n",
        "src/vendor/keep.py": "keep\n",
        "build/out.txt": "out\n",
        "assets/logo.png": b"\x89PNG\r\n",
    })


def test_collects_files_and_records_exclusions(project):
    result = collect(project, [project], patterns=["*.png"])

    assert rels(result) == [
        ".gitignore",
        "README.md",
        "src/main.py",
        "src/util.py",
        "src/vendor/.gitignore",
        "src/vendor/keep.py",
    ]
    assert result.excluded == ["assets/logo.png"]
    assert result.ignored == [
        ExclusionRecord("build", project),
        ExclusionRecord("src/cache.tmp", project),
        ExclusionRecord("src/vendor/lib.py", project / "src" / "vendor"),
    ]


def test_ignore_files_are_not_collected_when_ignored_themselves(workspace):
    root = workspace({".gitignore": ".gitignore\n", "a.txt": "a"})
    assert rels(collect(root, [root])) == ["a.txt"]


def test_directory_and_file_inside_it_yield_file_once(project):
    main = project / "src" / "main.py"
    result = collect(project, [project / "src", main])
    assert rels(result).count("src/main.py") == 1


def test_same_root_twice_is_deduplicated(project):
    result = collect(project, [project / "src", project / "src"])
    assert rels(result) == ["src/main.py", "src/util.py", "src/vendor/.gitignore", "src/vendor/keep.py"]


def test_global_exclusion_takes_precedence_over_ignore_rules(workspace):
    root = workspace({".gitignore": "*.png\n", "logo.png": b"\x89PNG", "a.txt": "a"})
    result = collect(root, [root], patterns=["*.png"])
    assert result.excluded == ["logo.png"]
    assert result.ignored == []


def test_default_global_pattern_excludes_png_without_ignore_file(workspace):
    root = workspace({"logo.png": b"\x89PNG", "a.txt": "a"})
    result = collect(root, [root], patterns=GlobalExcluder().patterns)
    assert result.excluded == ["logo.png"]
    assert rels(result) == ["a.txt"]


def test_file_selected_inside_ignored_directory_is_attributed_to_root(project):
    result = collect(project, [project / "build" / "out.txt"])
    assert rels(result) == []
    assert result.ignored == [ExclusionRecord("build/out.txt", project)]


def test_globally_excluded_directory_is_not_traversed(workspace, flaky_fs):
    root = workspace({"node_modules/pkg/index.js": "x", "app.js": "y"})
    listed = []
    fs = flaky_fs(on_read_directory=listed.append)
    result = collect(root, [root], patterns=["node_modules/**"], fs=fs)
    assert result.excluded == ["node_modules"]
    assert root / "node_modules" not in listed
    assert rels(result) == ["app.js"]


def test_root_order_does_not_change_outcome(project):
    roots = [project / "src" / "vendor", project / "build" / "out.txt", project]
    forward = collect(project, roots, patterns=["*.png"])
    backward = collect(project, list(reversed(roots)), patterns=["*.png"])
    assert rels(forward) == rels(backward)
    assert forward.ignored == backward.ignored
    assert forward.excluded == backward.excluded


def test_collecting_twice_is_idempotent(project):
    first = collect(project, [project])
    second = collect(project, [project])
    assert first == second


def test_nested_ignore_file_applies_regardless_of_selection(project):
    direct = collect(project, [project / "src" / "vendor" / "lib.py"])
    assert direct.ignored == [ExclusionRecord("src/vendor/lib.py", project / "src" / "vendor")]


def test_nested_negation_does_not_override_parent_rule(workspace):
    root = workspace({".gitignore": "*.log\n", "sub/.gitignore": "!keep.log\n", "sub/keep.log": "k"})
    result = collect(root, [root])
    assert "sub/keep.log" not in rels(result)
    assert result.ignored == [ExclusionRecord("sub/keep.log", root)]


def test_paths_outside_workspace_skip_ignore_checks(tmp_path, workspace):
    root = workspace({".gitignore": "*.txt\n"})
    outside = tmp_path / "elsewhere"
    outside.mkdir()
    (outside / "note.txt").write_text("n")

    result = collect(root, [outside / "note.txt"])

    assert rels(result) == [(outside / "note.txt").as_posix()]


def test_cancelled_token_aborts_collection(project):
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        collect(project, [project], token=token)


def test_cancel_mid_traversal(workspace, flaky_fs):
    root = workspace({f"d{i}/f{j}.txt": "x" for i in range(20) for j in range(5)})
    token = CancellationToken()
    fs = flaky_fs(on_read_directory=lambda path: token.cancel() if path != root else None)
    roots, _ = resolve_roots([root])
    with pytest.raises(OperationCancelled):
        make_collector(root, token=token, fs=fs).collect(roots)


def test_unreadable_directory_is_recorded(workspace, flaky_fs):
    root = workspace({"ok/a.txt": "a", "bad/b.txt": "b"})

    class Failing(flaky_fs):
        def read_directory(self, path):
            if path.name == "bad":
                raise PermissionError("denied")
            return super().read_directory(path)

    roots, _ = resolve_roots([root])
    result = make_collector(root, fs=Failing()).collect(roots)
    assert rels(result) == ["ok/a.txt"]
    assert result.failed == [("bad", "denied")]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_cycle_terminates(workspace):
    root = workspace({"a/file.txt": "x"})
    try:
        os.symlink(root / "a", root / "a" / "loop", target_is_directory=True)
    except OSError:
        pytest.skip("cannot create symlinks here")
    result = collect(root, [root])
    assert "a/file.txt" in rels(result)
    assert all(r.count("loop") <= 1 for r in rels(result))


def test_resolve_roots_reports_missing_paths(project):
    roots, failed = resolve_roots([project / "README.md", project / "missing.txt"])
    assert roots == [SelectionRoot(project / "README.md", FileKind.FILE)]
    assert failed[0][0] == str(project / "missing.txt")


def test_resolve_roots_raises_when_nothing_can_be_stat_ed(tmp_path):
    with pytest.raises(SelectionError):
        resolve_roots([tmp_path / "nope", tmp_path / "also-nope"])


def test_relative_to_workspace(tmp_path):
    assert relative_to_workspace(tmp_path / "a" / "b.txt", tmp_path) == "a/b.txt"
    assert relative_to_workspace(tmp_path.parent, tmp_path) == tmp_path.parent.as_posix()


def test_ignore_chain_comes_from_locator(workspace):
    root = workspace({".gitignore": "*.tmp\n", "a/b/c.tmp": "x"})
    walked = []

    class RecordingLocator(IgnoreFileLocator):
        def directories(self, start):
            walked.append(start)
            return super().directories(start)

    collector = FileCollector(root, GlobalExcluder([]), RecordingLocator(root, IgnoreFileCache()))

    assert collector.ignoring_directory(root / "a" / "b" / "c.tmp", is_dir=False) == root
    assert walked == [root / "a" / "b"]
