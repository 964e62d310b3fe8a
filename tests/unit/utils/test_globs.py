"""Tests for glob matching."""

import pytest

from lance_context.utils.globs import directory_excluded, matches_any, matches_glob


class TestMatchesGlob:
    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("main.py", "**/*.py"),
            ("src/pkg/main.py", "**/*.py"),
            ("main.py", "*.py"),
            ("src/deep/main.py", "*.py"),
            ("src/app.ts", "src/*.ts"),
            ("src/a/b/c.go", "src/**/*.go"),
            ("src/c.go", "src/**/*.go"),
            ("node_modules/x/index.js", "**/node_modules/**"),
            ("a/node_modules/index.js", "**/node_modules/**"),
            ("lib/jquery.min.js", "**/*.min.js"),
            ("src/a.py", "src/?.py"),
            ("src\\win\\path.py", "src/**/*.py"),
        ],
    )
    def test_matches(self, path, pattern):
        assert matches_glob(path, pattern)

    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("main.pyc", "**/*.py"),
            ("src/a/app.ts", "src/*.ts"),
            ("lib/src/c.go", "src/**/*.go"),
            ("node_modules_extra/a.js", "**/node_modules/**"),
            ("src/ab.py", "src/?.py"),
        ],
    )
    def test_does_not_match(self, path, pattern):
        assert not matches_glob(path, pattern)

    def test_matches_any(self):
        assert matches_any("a.rs", ["**/*.py", "**/*.rs"])
        assert not matches_any("a.rb", ["**/*.py", "**/*.rs"])
        assert not matches_any("a.rb", [])


class TestDirectoryExcluded:
    def test_excluded(self):
        patterns = ["**/node_modules/**", "build/**"]
        assert directory_excluded("node_modules", patterns)
        assert directory_excluded("packages/web/node_modules", patterns)
        assert directory_excluded("build", patterns)

    def test_not_excluded(self):
        patterns = ["**/node_modules/**", "**/*.min.js"]
        assert not directory_excluded("src", patterns)
        assert not directory_excluded("src/build", ["build/**"])
