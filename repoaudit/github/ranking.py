"""
File significance ranking.

Picks the handful of repository files whose content is worth fetching and
embedding in the review prompt. Scoring is additive over independent signal
categories matched against the lower-cased path, the bare filename and the
path depth. Pure and deterministic: no I/O, no dependence on input order.
"""

import re
from typing import Iterable, List, NamedTuple

from repoaudit.constants import RANKED_FILE_LIMIT
from repoaudit.models import RepositoryFile

INTERESTING_EXTENSIONS = (
    ".ts", ".tsx", ".js", ".jsx", ".py", ".go", ".rs", ".java", ".kt",
    ".rb", ".php", ".cs", ".swift", ".c", ".cpp", ".h", ".vue", ".svelte",
    ".css", ".html", ".json", ".toml", ".yaml", ".yml", ".md",
)

# Category weights, highest first. Relative order matters more than values.
ENTRY_POINT_WEIGHT = 30
CONFIG_WEIGHT = 25
ROUTING_WEIGHT = 20
DOMAIN_WEIGHT = 15
SERVICE_WEIGHT = 15
MIDDLEWARE_WEIGHT = 10
UTILITY_WEIGHT = 7
UI_COMPONENT_WEIGHT = 5
ROOT_FILE_BONUS = 8
SECOND_LEVEL_BONUS = 4
SOURCE_DIR_BONUS = 4
README_BONUS = 6
LANGUAGE_ENTRY_BONUS = 6

TEST_PENALTY = 12
OVERSIZE_PENALTY = 5
GENERATED_PENALTY = 1000

OVERSIZE_BYTES = 100_000
# Anything this low can only come from the generated/vendor penalty.
EXCLUSION_FLOOR = -GENERATED_PENALTY // 2

ENTRY_POINT_STEMS = {
    "main", "index", "app", "server", "cli", "__main__", "manage",
    "bootstrap", "startup", "program", "wsgi", "asgi",
}

MANIFEST_FILENAMES = {
    "package.json", "tsconfig.json", "pyproject.toml", "setup.cfg", "cargo.toml",
    "go.mod", "pom.xml", "build.gradle", "composer.json", "gemfile",
    "docker-compose.yml", "docker-compose.yaml", "vite.config.ts", "vite.config.js",
    "webpack.config.js", "next.config.js", "angular.json", "pubspec.yaml",
}

LANGUAGE_ENTRY_FILENAMES = {
    "main.py", "__main__.py", "manage.py", "app.py", "wsgi.py", "asgi.py",
    "main.go", "main.rs", "lib.rs", "main.java", "application.java", "main.kt",
    "index.ts", "index.js", "main.ts", "main.tsx", "app.tsx", "app.jsx",
    "server.js", "server.ts", "program.cs", "main.c", "main.cpp", "main.swift",
}

CONFIG_FRAGMENTS = ("config", "settings", ".env")
ROUTING_FRAGMENTS = ("route", "router", "api/", "controller", "handler", "endpoint")
DOMAIN_FRAGMENTS = ("model", "schema", "entity", "entities", "repositor", "migration", "database", "/db/")
SERVICE_FRAGMENTS = ("service", "usecase", "use_case", "domain/", "core/", "logic", "manager")
MIDDLEWARE_FRAGMENTS = ("middleware", "interceptor", "guard", "auth", "security", "permission")
UTILITY_FRAGMENTS = ("util", "helper", "lib/", "shared/", "common/", "hook")
UI_FRAGMENTS = ("component", "pages/", "views/", "screens/", "widgets/")
UI_EXTENSIONS = (".tsx", ".jsx", ".vue", ".svelte")
SOURCE_DIR_PREFIXES = ("src/", "app/", "lib/", "pkg/", "cmd/", "internal/", "server/", "backend/")

GENERATED_FRAGMENTS = (
    "node_modules/", "vendor/", "third_party/", "bower_components/", "dist/", "build/",
    "coverage/", ".next/", "target/", "__pycache__/", ".min.", "package-lock",
    "yarn.lock", "pnpm-lock", "poetry.lock", "cargo.lock",
)

_TEST_DIR_RE = re.compile(r"(^|/)(tests?|__tests__|specs?|fixtures?|mocks?|__mocks__|testdata)(/|$)")
_TEST_NAME_RE = re.compile(r"(^test_|_test\.|\.test\.|\.spec\.|_spec\.|^conftest\.py$)")


class FileScore(NamedTuple):
    file: RepositoryFile
    score: int


def is_interesting(path: str) -> bool:
    return path.lower().endswith(INTERESTING_EXTENSIONS)


def _matches(path: str, fragments: Iterable[str]) -> bool:
    return any(fragment in path for fragment in fragments)


def score_file(file: RepositoryFile) -> int:
    """Additive significance score for one file."""
    path = file.path.lower()
    name = path.rsplit("/", 1)[-1]
    stem = name.split(".", 1)[0]
    depth = file.depth
    score = 0

    if stem in ENTRY_POINT_STEMS:
        score += ENTRY_POINT_WEIGHT
    if name in MANIFEST_FILENAMES or _matches(path, CONFIG_FRAGMENTS):
        score += CONFIG_WEIGHT
    if _matches(path, ROUTING_FRAGMENTS):
        score += ROUTING_WEIGHT
    if _matches(path, DOMAIN_FRAGMENTS):
        score += DOMAIN_WEIGHT
    if _matches(path, SERVICE_FRAGMENTS):
        score += SERVICE_WEIGHT
    if _matches(path, MIDDLEWARE_FRAGMENTS):
        score += MIDDLEWARE_WEIGHT
    if _matches(path, UTILITY_FRAGMENTS):
        score += UTILITY_WEIGHT
    if _matches(path, UI_FRAGMENTS) and name.endswith(UI_EXTENSIONS):
        score += UI_COMPONENT_WEIGHT

    if depth == 1:
        score += ROOT_FILE_BONUS
    elif depth == 2:
        score += SECOND_LEVEL_BONUS
    if path.startswith(SOURCE_DIR_PREFIXES):
        score += SOURCE_DIR_BONUS
    if stem == "readme":
        score += README_BONUS
    if name in LANGUAGE_ENTRY_FILENAMES:
        score += LANGUAGE_ENTRY_BONUS

    if _TEST_DIR_RE.search(path) or _TEST_NAME_RE.search(name):
        score -= TEST_PENALTY
    if _matches(path, GENERATED_FRAGMENTS):
        score -= GENERATED_PENALTY
    if file.byte_size is not None and file.byte_size > OVERSIZE_BYTES:
        score -= OVERSIZE_PENALTY

    return score


def _sort_key(item: FileScore):
    return (-item.score, item.file.depth, item.file.path)


def rank(files: Iterable[RepositoryFile], limit: int = RANKED_FILE_LIMIT) -> List[RepositoryFile]:
    """
    Order candidate files by significance and keep the top ``limit``.

    Args:
        files: Tree entries to choose from.
        limit: Maximum number of files returned.

    Returns:
        Files with an allow-listed extension, sorted by score (desc), path
        depth (asc) then path (asc). Generated, vendored and lock files are
        never returned.
    """
    scored = [FileScore(f, score_file(f)) for f in files if is_interesting(f.path)]
    eligible = [item for item in scored if item.score > EXCLUSION_FLOOR]
    eligible.sort(key=_sort_key)
    return [item.file for item in eligible[:limit]]
