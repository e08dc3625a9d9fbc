from __future__ import annotations

import sys
import pytest
from typing import Generator
from unittest.mock import patch

from rich.console import Console
from rich.table import Table

from minipm.utils.console import (
    MINIPM_THEME,
    _should_use_color,
    colorize_update_type,
    get_raw_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)


@pytest.fixture(autouse=True)
def reset_console() -> Generator[None, None, None]:
    """Clear the console singleton around each test."""
    reconfigure_console()
    yield
    reconfigure_console()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("CI", raising=False)


@pytest.mark.unit
class TestShouldUseColor:
    """Tests for _should_use_color."""

    def test_tty(self, clean_env: None) -> None:
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is True

    def test_non_tty(self, clean_env: None) -> None:
        with patch.object(sys.stdout, "isatty", return_value=False):
            assert _should_use_color() is False

    @pytest.mark.parametrize("env_var", ["NO_COLOR", "CI"])
    def test_env_disables(self, monkeypatch: pytest.MonkeyPatch, env_var: str) -> None:
        monkeypatch.setenv(env_var, "1")

        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is False


@pytest.mark.unit
class TestConsoleSingleton:
    """Tests for get_raw_console and reconfigure_console."""

    def test_same_instance(self) -> None:
        assert get_raw_console() is get_raw_console()

    def test_reconfigure_creates_new_instance(self) -> None:
        first = get_raw_console()

        reconfigure_console()

        assert get_raw_console() is not first

    def test_theme_styles(self) -> None:
        assert set(MINIPM_THEME.styles) >= {"success", "error", "warning", "info", "package"}


@pytest.mark.unit
class TestPrintHelpers:
    """Tests for the status message helpers."""

    @pytest.mark.parametrize(
        "func, expected, style",
        [
            (print_success, "[OK] done", "success"),
            (print_error, "[ERROR] done", "error"),
            (print_warning, "[WARNING] done", "warning"),
        ],
    )
    def test_prefix_and_style(self, func, expected: str, style: str) -> None:
        with patch.object(Console, "print") as mock_print:
            func("done")

        mock_print.assert_called_once_with(expected, style=style, markup=False)

    def test_custom_prefix(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_success("Installed", prefix="+")

        mock_print.assert_called_once_with("+ Installed", style="success", markup=False)

    def test_brackets_in_message_are_literal(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_error("range [1.0.0] failed")

        assert mock_print.call_args[1]["markup"] is False

    def test_print_info(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_info("[dim]No dependencies to install.[/dim]")

        mock_print.assert_called_once_with("[dim]No dependencies to install.[/dim]")


@pytest.mark.unit
class TestPrintTable:
    """Tests for print_table."""

    def test_empty_data_prints_nothing(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_table([])

        mock_print.assert_not_called()

    def test_headers_default_to_first_row(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_table([{"Package": "left-pad", "Version": "1.1.0"}], title="Installed")

        table = mock_print.call_args[0][0]
        assert isinstance(table, Table)
        assert [c.header for c in table.columns] == ["Package", "Version"]
        assert table.title == "Installed"
        assert table.row_count == 1

    def test_explicit_headers_and_styles(self) -> None:
        with patch.object(Console, "print") as mock_print:
            print_table(
                [{"Package": "a", "Status": "installed", "Extra": "x"}],
                headers=["Status", "Package"],
                column_styles={"Package": {"style": "package", "no_wrap": True}},
            )

        table = mock_print.call_args[0][0]
        assert [c.header for c in table.columns] == ["Status", "Package"]
        assert table.columns[1].style == "package"
        assert table.columns[1].no_wrap is True

    def test_missing_cells_render_empty(self) -> None:
        console = Console(record=True, width=80, no_color=True)

        with patch("minipm.utils.console._get_console", return_value=console):
            print_table([{"A": "1", "B": "2"}, {"A": "3"}])

        assert "3" in console.export_text()


@pytest.mark.unit
class TestColorizeUpdateType:
    """Tests for colorize_update_type."""

    @pytest.mark.parametrize(
        "update_type, color",
        [("major", "red"), ("minor", "yellow"), ("patch", "green"), ("new", "cyan"), ("removed", "magenta")],
    )
    def test_known_types(self, update_type: str, color: str) -> None:
        assert colorize_update_type(update_type) == f"[{color}]{update_type}[/{color}]"

    def test_case_insensitive_lookup(self) -> None:
        assert colorize_update_type("MAJOR") == "[red]MAJOR[/red]"

    def test_unknown_passthrough(self) -> None:
        assert colorize_update_type("same") == "same"
