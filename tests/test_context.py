from __future__ import annotations

from pathlib import Path

import click
import pytest

from minipm.config import MinipmConfig
from minipm.context import MinipmContext, pass_context


@pytest.mark.unit
class TestMinipmContext:
    """Tests for MinipmContext."""

    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

        ctx = MinipmContext()

        assert ctx.config_path is None
        assert ctx.verbose == 0
        assert ctx.color is True
        assert ctx.config == MinipmConfig()
        assert ctx.project_dir == tmp_path

    def test_slots_reject_unknown_attributes(self) -> None:
        ctx = MinipmContext()

        with pytest.raises(AttributeError):
            ctx.arbitrary_attribute = "value"  # type: ignore

    def test_resolve_relative(self, tmp_path: Path) -> None:
        ctx = MinipmContext()
        ctx.project_dir = tmp_path

        assert ctx.resolve("node_modules") == tmp_path / "node_modules"

    def test_resolve_absolute(self, tmp_path: Path) -> None:
        ctx = MinipmContext()
        ctx.project_dir = Path("/somewhere/else")

        assert ctx.resolve(str(tmp_path / "cache")) == tmp_path / "cache"

    def test_resolve_expands_user(self) -> None:
        ctx = MinipmContext()

        assert ctx.resolve("~/cache") == Path("~/cache").expanduser()


@pytest.mark.unit
class TestPassContextDecorator:
    """Tests for pass_context decorator."""

    def test_injects_existing_context(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: MinipmContext) -> MinipmContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))
        minipm_ctx = MinipmContext()
        click_ctx.obj = minipm_ctx

        assert click_ctx.invoke(command) is minipm_ctx

    def test_creates_context_when_missing(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: MinipmContext) -> MinipmContext:
            return ctx

        result = click.Context(click.Command("test")).invoke(command)

        assert isinstance(result, MinipmContext)
        assert result.verbose == 0
