"""
Tests for command-line parsing and configuration overrides.
"""

import pytest
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PDF_REFLOW_ROW_TOLERANCE", "PDF_REFLOW_PARAGRAPH_GAP",
                 "PDF_REFLOW_TIMEOUT", "PDF_REFLOW_DEBUG"):
        monkeypatch.delenv(name, raising=False)


class TestPageRange:
    """Test --pages parsing."""

    @pytest.mark.parametrize("page_str,expected", [
        ("1-3,5", [1, 2, 3, 5]),
        ("3,1,3", [1, 3]),
        (" 2 , 4-5 ", [2, 4, 5]),
        ("0-2", [1, 2]),
    ])
    def test_valid(self, page_str, expected):
        from pdf_reflow.cli import parse_page_range

        assert parse_page_range(page_str) == expected

    def test_max_pages(self):
        from pdf_reflow.cli import parse_page_range

        assert parse_page_range("2-10", max_pages=4) == [2, 3, 4]
        assert parse_page_range("1,9", max_pages=4) == [1]

    @pytest.mark.parametrize("page_str", ["0", "5-3", "abc", ",", "1-x"])
    def test_invalid(self, page_str):
        from pdf_reflow.cli import parse_page_range

        with pytest.raises(ValueError):
            parse_page_range(page_str)


class TestArguments:
    """Test argument parsing and config building."""

    def test_defaults(self):
        from pdf_reflow.cli import setup_argparser

        args = setup_argparser().parse_args(["-i", "a.pdf", "-o", "out"])

        assert args.input == ["a.pdf"]
        assert args.format == ["docx"]
        assert args.mode == "flow"
        assert args.row_tolerance is None
        assert args.timeout is None
        assert args.merge is False

    def test_multiple_inputs(self):
        from pdf_reflow.cli import setup_argparser

        args = setup_argparser().parse_args(
            ["--input", "a.pdf", "b.pdf", "--output", "out", "--format", "all", "--mode", "exact"]
        )

        assert args.input == ["a.pdf", "b.pdf"]
        assert args.format == ["all"]
        assert args.mode == "exact"

    def test_invalid_mode_exits(self):
        from pdf_reflow.cli import setup_argparser

        with pytest.raises(SystemExit):
            setup_argparser().parse_args(["-i", "a.pdf", "-o", "out", "--mode", "loose"])

    def test_build_config_overrides(self):
        from pdf_reflow.cli import setup_argparser, build_config

        args = setup_argparser().parse_args([
            "-i", "a.pdf", "-o", "out",
            "--row-tolerance", "0.8", "--timeout", "0", "--debug"
        ])
        config = build_config(args)

        assert config.reconstruction.row_tolerance == 0.8
        assert config.reconstruction.paragraph_gap == 2.5
        assert config.extraction.timeout_seconds is None
        assert config.debug_mode is True

    def test_build_config_rejects_negative(self):
        from pdf_reflow.cli import setup_argparser, build_config

        args = setup_argparser().parse_args(
            ["-i", "a.pdf", "-o", "out", "--paragraph-gap", "-1"]
        )

        with pytest.raises(ValueError):
            build_config(args)

    def test_template_option(self, tmp_path):
        from pdf_reflow.cli import setup_argparser, build_config

        template = tmp_path / "template.docx"
        template.write_bytes(b"")
        args = setup_argparser().parse_args(
            ["-i", "a.pdf", "-o", "out", "--template", str(template)]
        )

        assert build_config(args).export.docx_template == str(template)

    def test_missing_template_rejected(self, tmp_path):
        from pdf_reflow.cli import setup_argparser, build_config

        args = setup_argparser().parse_args(
            ["-i", "a.pdf", "-o", "out", "--template", str(tmp_path / "none.docx")]
        )

        with pytest.raises(ValueError):
            build_config(args)

    def test_unique_name(self):
        from pdf_reflow.cli import _unique_name

        used = set()

        assert _unique_name("report", used) == "report"
        assert _unique_name("report", used) == "report_2"
        assert _unique_name("report", used) == "report_3"


class TestMain:
    """Test exit codes."""

    def test_no_pdfs(self, monkeypatch, tmp_path):
        from pdf_reflow import cli

        monkeypatch.setattr(sys, "argv", [
            "pdf-reflow", "-i", str(tmp_path / "missing.pdf"), "-o", str(tmp_path / "out"), "-q"
        ])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == cli.EXIT_FAILURE

    def test_debug_mode_enables_debug_logging(self, monkeypatch, tmp_path, caplog):
        """PDF_REFLOW_DEBUG turns on DEBUG logging for the run."""
        from pdf_reflow.cli import setup_argparser, run_pipeline, EXIT_FAILURE

        monkeypatch.setenv("PDF_REFLOW_DEBUG", "true")
        args = setup_argparser().parse_args(
            ["-i", str(tmp_path / "missing.pdf"), "-o", str(tmp_path / "out")]
        )

        with caplog.at_level(logging.INFO):
            assert run_pipeline(args) == EXIT_FAILURE
            assert logging.getLogger().level == logging.DEBUG

    def test_keyboard_interrupt(self, monkeypatch, tmp_path):
        from pdf_reflow import cli

        def interrupted(args):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "run_pipeline", interrupted)
        monkeypatch.setattr(sys, "argv", ["pdf-reflow", "-i", "a.pdf", "-o", str(tmp_path)])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 130


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
