"""
Tests for the tmplc command line driver.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tmplc import main, infer_language


class TestLanguageInference:

    def test_known_extensions(self):
        assert infer_language("page.liquid") == "liquid"
        assert infer_language("page.njk") == "nunjucks"
        assert infer_language("page.J2") == "nunjucks"

    def test_unknown_extension(self):
        assert infer_language("page.html") is None


class TestMain:
    """Tests for main() run in-process."""

    def test_translate_to_stdout(self, tmp_path, capsys):
        source = tmp_path / "page.liquid"
        source.write_text("Hello {{ name | upcase }}!")
        main([str(source), "--to", "nunjucks"])
        assert capsys.readouterr().out == "Hello {{ name | upper }}!"

    def test_translate_to_file(self, tmp_path, capsys):
        source = tmp_path / "page.njk"
        source.write_text("{{ a + 1 }}")
        output = tmp_path / "page.liquid"
        main([str(source), "--to", "liquid", "-o", str(output)])
        assert output.read_text() == "{{ a | plus: 1 }}"
        assert "Translated" in capsys.readouterr().err

    def test_explicit_source_language(self, tmp_path, capsys):
        source = tmp_path / "page.html"
        source.write_text("{% if not a %}x{% endif %}")
        main([str(source), "--from", "nunjucks", "--to", "liquid"])
        assert capsys.readouterr().out == "{% unless a %}x{% endunless %}"

    def test_emit_ir(self, tmp_path, capsys):
        source = tmp_path / "page.liquid"
        source.write_text("{% for p in ps %}{{ p }}{% endfor %}")
        main([str(source), "--emit-ir"])
        out = capsys.readouterr().out
        assert out.startswith("Loop p in")
        assert "Output:" in out

    def test_uninferable_language(self, tmp_path):
        source = tmp_path / "page.html"
        source.write_text("x")
        with pytest.raises(SystemExit) as excinfo:
            main([str(source), "--to", "liquid"])
        assert excinfo.value.code == 2

    def test_missing_target(self, tmp_path):
        source = tmp_path / "page.liquid"
        source.write_text("x")
        with pytest.raises(SystemExit) as excinfo:
            main([str(source)])
        assert excinfo.value.code == 2

    def test_translation_error_exit_code(self, tmp_path, capsys):
        source = tmp_path / "page.liquid"
        source.write_text("{% break %}")
        with pytest.raises(SystemExit) as excinfo:
            main([str(source), "--to", "nunjucks"])
        assert excinfo.value.code == 1
        assert "break" in capsys.readouterr().err


class TestScript:
    """Tests for tmplc.py run as a separate process."""

    def test_round_trip(self, run_tmplc):
        result = run_tmplc("page.njk", "{{ (price + tax) * quantity }}", "--to", "liquid")
        assert result.success, result.stderr
        assert result.stdout == "{{ price | plus: tax | times: quantity }}"

    def test_parse_error(self, run_tmplc):
        result = run_tmplc("page.liquid", "{% if a %}unclosed", "--to", "nunjucks")
        assert result.returncode == 1
        assert "Translation failed" in result.stderr
