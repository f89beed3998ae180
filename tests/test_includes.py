"""Tests for pyet.includes module and include rendering."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from pyet.cache import TemplateCache
from pyet.compiler import Compilation
from pyet.exceptions import (
    ConfigError,
    IncludeError,
    TemplateNotFoundError,
    TemplateRuntimeError,
)
from pyet.includes import (
    DEFAULT_EXTENSION,
    MAX_INCLUDE_DEPTH,
    IncludeResolver,
    get_include_path,
    resolve_include,
)
from pyet.loader import load_program
from pyet.options import CompileOptions

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from pyet.compiler import TemplateCompiler


class TestResolveInclude:
    def test_relative_to_including_file(self):
        assert resolve_include("header", "/views/pages/home.pyet") == "/views/pages/header.pyet"

    def test_parent_directory(self):
        assert resolve_include("../header", "/views/pages/home.pyet") == "/views/header.pyet"

    def test_keeps_existing_extension(self):
        assert resolve_include("header.html", "/views/home.pyet") == "/views/header.html"

    def test_is_dir(self):
        assert resolve_include("header", "/views", is_dir=True) == "/views/header.pyet"

    def test_default_extension(self):
        assert DEFAULT_EXTENSION == ".pyet"


class TestGetIncludePath:
    def test_absolute_against_root(self):
        assert get_include_path("/partials/nav", "/views/home.pyet", "/site") == (
            "/site/partials/nav.pyet"
        )

    def test_absolute_default_root(self):
        assert get_include_path("/nav", None, None) == os.path.abspath("/nav.pyet")

    def test_relative(self):
        assert get_include_path("nav", "/views/home.pyet", None) == "/views/nav.pyet"

    def test_relative_without_filename(self):
        with pytest.raises(ConfigError, match="filename"):
            get_include_path("nav", None, None)


class TestIncludeResolver:
    def _resolver(self, filename: str, **options: object) -> IncludeResolver:
        def build(text: str, identifier: str):
            raise AssertionError("build should not be called")

        return IncludeResolver(CompileOptions(filename=filename, **options), TemplateCache(), build)

    def test_path_stack_starts_with_filename(self):
        resolver = self._resolver("/views/home.pyet")
        assert resolver.path_stack == ["/views/home.pyet"]
        assert resolver.current_filename == "/views/home.pyet"

    def test_path_stack_popped_on_failure(self, tmp_path: Path):
        resolver = self._resolver(str(tmp_path / "home.pyet"))
        with pytest.raises(FileNotFoundError):
            with resolver.including("missing"):
                pass
        assert resolver.path_stack == [str(tmp_path / "home.pyet")]

    def test_path_stack_popped_when_body_raises(self, tmp_path: Path):
        (tmp_path / "part.pyet").write_text("x", encoding="utf-8")
        calls: list[str] = []

        def build(text: str, identifier: str):
            calls.append(identifier)
            return object()

        resolver = IncludeResolver(
            CompileOptions(filename=str(tmp_path / "home.pyet")), TemplateCache(), build
        )
        with pytest.raises(RuntimeError):
            with resolver.including("part"):
                assert resolver.current_filename == str(tmp_path / "part.pyet")
                raise RuntimeError("render failed")
        assert resolver.path_stack == [str(tmp_path / "home.pyet")]
        assert calls == [str(tmp_path / "part.pyet")]

    def test_pages_used_verbatim(self):
        resolver = self._resolver("home", pages={"home": "", "nav": "<nav>"})
        assert resolver.resolve("nav") == "nav"
        assert resolver.fetch("nav") == "<nav>"

    def test_pages_miss(self):
        resolver = self._resolver("home", pages={"home": ""})
        with pytest.raises(TemplateNotFoundError, match="nav"):
            resolver.fetch("nav")


class TestInlineIncludes:
    def test_include_directive(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("header.pyet", "<h1><%= title %></h1>\n")
        main = write_template("main.pyet", "<% include header %>body")
        assert compiler.render_file(main, {"title": "Hi"}) == "<h1>Hi</h1>\nbody"

    def test_include_directive_in_escaped_tag_is_escaped(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("bold.pyet", "<b>x</b>")
        main = write_template("main.pyet", "<%= include bold %>|<%- include bold %>")
        assert compiler.render_file(main) == "&lt;b&gt;x&lt;/b&gt;|<b>x</b>"

    def test_include_inside_block(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("item.pyet", "<li><%= label %></li>")
        main = write_template("list.pyet", "<% for _ in range(2): %><% include item %><% end %>")
        assert compiler.render_file(main, {"label": "a"}) == "<li>a</li><li>a</li>"

    def test_include_sees_loop_variable(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("item.pyet", "<li><%= item %></li>")
        main = write_template("main.pyet", "<% for item in items: %><% include item %><% end %>")
        assert compiler.render_file(main, {"items": ["a", "b"]}) == "<li>a</li><li>b</li>"

    def test_nested_include_sees_loop_variable(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("cell.pyet", "<td><%= value %></td>")
        write_template("row.pyet", "<tr><% include cell %></tr>")
        main = write_template("table.pyet", "<% for value in values: %><% include row %><% end %>")
        assert compiler.render_file(main, {"values": [1, 2]}) == (
            "<tr><td>1</td></tr><tr><td>2</td></tr>"
        )

    def test_include_assignments_stay_in_include(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("scaled.pyet", "<% n = n * 10 %><%= n %>")
        main = write_template("main.pyet", "<% include scaled %>|<%= n %>")
        assert compiler.render_file(main, {"n": 2}) == "20|2"

    def test_error_inside_inline_include_reports_include(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        bad = write_template("bad.pyet", "ok\n<%= 1 // zero %>")
        main = write_template("main.pyet", "<% include bad %>")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            compiler.render_file(main, {"zero": 0})
        assert exc_info.value.path == str(bad)
        assert exc_info.value.lineno == 2

    def test_nested_relative_includes(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("partials/footer.pyet", "[<% include links %>]")
        write_template("partials/links.pyet", "links")
        main = write_template("main.pyet", "<% include partials/footer %>")
        assert compiler.render_file(main) == "[links]"

    def test_absolute_include_uses_root(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
        tmp_path: Path,
    ):
        write_template("shared/nav.pyet", "nav")
        main = write_template("pages/home.pyet", "<% include /shared/nav %>")
        options = CompileOptions(root=str(tmp_path))
        assert compiler.render_file(main, None, options) == "nav"

    def test_include_without_filename(self, compiler: TemplateCompiler):
        with pytest.raises(ConfigError, match="filename"):
            compiler.compile("<% include header %>")

    def test_missing_include(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        main = write_template("main.pyet", "<% include nope %>")
        with pytest.raises(FileNotFoundError):
            compiler.render_file(main)

    def test_include_cycle(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("a.pyet", "a<% include b %>")
        main = write_template("b.pyet", "b<% include a %>")
        with pytest.raises(IncludeError, match=str(MAX_INCLUDE_DEPTH)):
            compiler.render_file(main)

    def test_pages(self, compiler: TemplateCompiler):
        options = CompileOptions(pages={"nav": "<nav><%= n %></nav>"})
        assert compiler.render("<% include nav %>!", {"n": 1}, options) == "<nav>1</nav>!"


class TestRuntimeIncludes:
    def test_include_function(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("greet.pyet", "Hello <%= name %>")
        main = write_template("main.pyet", '<%- include("greet", {"name": "Ada"}) %>.')
        assert compiler.render_file(main, {"name": "nobody"}) == "Hello Ada."

    def test_include_function_inherits_data(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("greet.pyet", "<%= greeting %> <%= name %>")
        main = write_template("main.pyet", '<%- include("greet", {"name": "Ada"}) %>')
        assert compiler.render_file(main, {"greeting": "Hi"}) == "Hi Ada"

    def test_include_function_with_variable_path(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("one.pyet", "1")
        write_template("two.pyet", "2")
        main = write_template("main.pyet", "<% for name in names: %><%- include(name) %><% end %>")
        assert compiler.render_file(main, {"names": ["one", "two", "one"]}) == "121"

    def test_nested_runtime_include_resolves_against_includer(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        write_template("sub/inner.pyet", "inner")
        write_template("sub/outer.pyet", '(<%- include("inner") %>)')
        main = write_template("main.pyet", '<%- include("sub/outer") %>')
        assert compiler.render_file(main) == "(inner)"

    def test_error_inside_runtime_include_reports_include(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        bad = write_template("bad.pyet", "ok\n<%= 1 // 0 %>")
        main = write_template("main.pyet", '<%- include("bad") %>')
        with pytest.raises(TemplateRuntimeError) as exc_info:
            compiler.render_file(main)
        assert exc_info.value.path == str(bad)
        assert exc_info.value.lineno == 2


class TestDependencyTracking:
    def test_load_only_once_compiles_each_include_once(
        self,
        write_template: Callable[[str, str], Path],
    ):
        loads: list[str | None] = []

        def counting_load(source, filename=None, line_map=None):
            loads.append(filename)
            return load_program(source, filename, line_map)

        write_template("part.pyet", "p")
        main = write_template("main.pyet", "<% include part %><% include part %>")
        text = main.read_text(encoding="utf-8")

        once = Compilation(
            CompileOptions(filename=str(main), load_only_once=True),
            TemplateCache(),
            counting_load,
        )
        once.compile(text)
        assert len(loads) == 2
        assert list(once.resolver.dependencies) == [str(main.parent / "part.pyet")]

        loads.clear()
        every = Compilation(CompileOptions(filename=str(main)), TemplateCache(), counting_load)
        every.compile(text)
        assert len(loads) == 3
        assert every.resolver.dependencies == {}

    def test_cached_includes_reused_across_compiles(
        self,
        compiler: TemplateCompiler,
        write_template: Callable[[str, str], Path],
    ):
        part = write_template("part.pyet", "p")
        main = write_template("main.pyet", "<% include part %>")
        compiler.render_file(main, None, CompileOptions(cache=True))
        assert str(part) in compiler.cache
        assert str(main) in compiler.cache
