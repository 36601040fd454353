import random

from repoaudit.github.ranking import RANKED_FILE_LIMIT, rank, score_file
from repoaudit.models import RepositoryFile


def make_files(*paths, size=100):
    return [RepositoryFile(path=p, blob_id=f"sha-{i}", byte_size=size) for i, p in enumerate(paths)]


def paths(files):
    return [f.path for f in files]


def test_only_allow_listed_extensions_are_ranked():
    files = make_files("src/main.py", "assets/logo.png", "bin/tool.exe", "docs/guide.md")

    ranked = rank(files)

    assert paths(ranked) == ["src/main.py", "docs/guide.md"]


def test_output_is_capped():
    files = make_files(*(f"src/module_{i}.py" for i in range(60)))

    ranked = rank(files)

    assert len(ranked) == RANKED_FILE_LIMIT
    assert set(paths(ranked)) <= set(paths(files))


def test_rank_is_deterministic_regardless_of_input_order():
    files = make_files(
        "src/main.py", "src/api/routes.py", "src/models/user.py", "README.md",
        "package.json", "tests/test_api.py", "lib/utils/strings.py", "web/components/Button.tsx",
    )
    shuffled = list(files)
    random.Random(7).shuffle(shuffled)

    assert rank(files) == rank(files)
    assert rank(shuffled) == rank(files)


def test_equal_scores_break_ties_by_depth_then_path():
    same_depth = make_files("src2/main.go", "a/main.go")
    assert score_file(same_depth[0]) == score_file(same_depth[1])
    assert paths(rank(same_depth)) == ["a/main.go", "src2/main.go"]

    different_depth = make_files("p/q/r/s/notes.md", "p/q/r/notes.md")
    assert score_file(different_depth[0]) == score_file(different_depth[1])
    assert paths(rank(different_depth)) == ["p/q/r/notes.md", "p/q/r/s/notes.md"]


def test_generated_and_vendor_paths_never_ranked():
    files = make_files(
        "node_modules/express/lib/router/index.js",
        "vendor/github.com/pkg/main.go",
        "dist/main.js",
        "package-lock.json",
        "src/util.py",
    )

    ranked = paths(rank(files))

    assert ranked == ["src/util.py"]


def test_signal_category_ordering():
    entry, config, routing, domain, middleware, utility, ui = make_files(
        "pkgx/main.py",
        "pkgx/settings.py",
        "pkgx/router.py",
        "pkgx/models.py",
        "pkgx/middleware.py",
        "pkgx/helpers.py",
        "pkgx/components/Card.tsx",
    )

    ordered = [score_file(f) for f in (entry, config, routing, domain, middleware, utility)]
    assert ordered == sorted(ordered, reverse=True)
    assert score_file(utility) > score_file(make_files("pkgx/notes.txt.md")[0])
    assert score_file(ui) > score_file(make_files("pkgx/widget.css")[0])


def test_tests_and_oversized_files_are_penalised():
    plain, test_file = make_files("pkgx/orders.py", "pkgx/tests/orders.py")
    big = RepositoryFile(path="pkgx/orders.py", blob_id="big", byte_size=250_000)

    assert score_file(test_file) < score_file(plain)
    assert score_file(big) < score_file(plain)


def test_root_files_rank_above_nested_equivalents():
    root, nested = make_files("server.js", "deep/nested/dir/server.js")

    assert score_file(root) > score_file(nested)
    assert paths(rank([nested, root]))[0] == "server.js"
