"""Tests for file filtering and diff utilities."""

from mrlens_core.utils.code import count_diff_lines, is_code_file


class TestIsCodeFile:
    def test_python_file_is_code(self):
        assert is_code_file("app/services/user.py") is True

    def test_js_file_is_code(self):
        assert is_code_file("src/components/Button.tsx") is True

    def test_image_is_not_code(self):
        assert is_code_file("assets/logo.png") is False

    def test_font_is_not_code(self):
        assert is_code_file("static/fonts/Inter.woff2") is False

    def test_lock_file_is_not_code(self):
        assert is_code_file("poetry.lock") is False
        assert is_code_file("yarn.lock") is False

    def test_package_lock_is_not_code(self):
        assert is_code_file("package-lock.json") is False
        assert is_code_file("web/package-lock.json") is False

    def test_compiled_artifacts_are_not_code(self):
        assert is_code_file("pkg/__pycache__/mod.cpython-312.pyc") is False
        assert is_code_file("target/Main.class") is False

    def test_minified_files_are_not_code(self):
        assert is_code_file("static/app.min.js") is False

    def test_vendored_and_build_directories_are_not_code(self):
        assert is_code_file("node_modules/left-pad/index.js") is False
        assert is_code_file("frontend/dist/main.js") is False
        assert is_code_file("build/lib/module.py") is False
        assert is_code_file("coverage/lcov-report/index.js") is False

    def test_similar_names_are_still_code(self):
        assert is_code_file("src/builder.py") is True
        assert is_code_file("src/distance.py") is True

    def test_case_insensitive(self):
        assert is_code_file("image.PNG") is False


class TestCountDiffLines:
    def test_counts_added_and_removed(self):
        diff = "@@ -1,3 +1,3 @@\n context\n-old\n+new\n+extra\n"
        assert count_diff_lines(diff) == (2, 1)

    def test_ignores_file_headers(self):
        diff = "--- a/app.py\n+++ b/app.py\n@@ -1 +1 @@\n-x = 1\n+x = 2\n"
        assert count_diff_lines(diff) == (1, 1)

    def test_empty_diff(self):
        assert count_diff_lines("") == (0, 0)
        assert count_diff_lines(None) == (0, 0)
