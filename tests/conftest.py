"""
Pytest configuration and fixtures for template translator tests.

Provides reusable fixtures for:
- Translating template source between languages
- Verifying expected output
- Checking translation errors
- Running the tmplc command line
"""

import pytest
import subprocess
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from translate import translate
from errors import TranslationError


class CliResult:
    """Result of running tmplc.py on a template file."""

    def __init__(self, returncode: int, stdout: str, stderr: str):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def success(self) -> bool:
        return self.returncode == 0


@pytest.fixture
def translator_root():
    """Path to translator root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def expect_translation():
    """
    Fixture that translates source and asserts the expected result.

    Usage:
        expect_translation("liquid", "nunjucks", "{{ a | upcase }}", "{{ a | upper }}")
    """
    def _expect(from_: str, to: str, source: str, expected: str):
        result = translate(from_=from_, to=to, input=source)
        assert result == expected, \
            f"Translation mismatch:\nExpected: {expected!r}\nGot: {result!r}"

    return _expect


@pytest.fixture
def expect_identity(expect_translation):
    """
    Fixture that checks a template survives a same-language translation.

    Usage:
        expect_identity("nunjucks", "{% if a %}x{% endif %}")
    """
    def _expect(language: str, source: str):
        expect_translation(language, language, source, source)

    return _expect


@pytest.fixture
def expect_translation_error():
    """
    Fixture that verifies translation fails with the expected error.

    Usage:
        expect_translation_error("nunjucks", "liquid", "{{ not a }}", RenderError, "not")
    """
    def _expect(from_: str, to: str, source: str,
                error_type=TranslationError, error_substring: str = None):
        with pytest.raises(error_type) as excinfo:
            translate(from_=from_, to=to, input=source)
        if error_substring:
            assert error_substring.lower() in str(excinfo.value).lower(), \
                f"Expected error containing '{error_substring}' but got:\n{excinfo.value}"
        return excinfo.value

    return _expect


@pytest.fixture
def run_tmplc(translator_root, tmp_path):
    """
    Fixture that writes a template file and runs tmplc.py on it.

    Usage:
        result = run_tmplc("page.liquid", "{{ a }}", "--to", "nunjucks")
        assert result.success
        assert result.stdout == "{{ a }}"
    """
    def _run(filename: str, source: str, *args) -> CliResult:
        source_path = tmp_path / filename
        source_path.write_text(source)

        tmplc = os.path.join(translator_root, "tmplc.py")
        result = subprocess.run(
            [sys.executable, tmplc, str(source_path)] + list(args),
            capture_output=True,
            text=True,
            cwd=translator_root
        )
        return CliResult(result.returncode, result.stdout, result.stderr)

    return _run
