"""Tests for customizer parameter parsing and the OpenSCAD workspace."""

import pytest

from scadcollab_api.core import OpenScadWorkspace, parse_parameters
from scadcollab_api.errors import RenderFailed, SyntaxCheckFailed

SOURCE = """/* [Size] */
// Outer width in mm
width = 40; // [10:100]
wall = 2; // [0.5:0.5:5]
height = 12; // [50]

/* [Style] */
style = "round"; // ["round", "square", hex]

/* [Hidden] */
$fn = 64; // [16:128]

module body() {
  inner = 3; // [1:10]
  cube([width, width, height]);
}
body();
"""


class TestParseParameters:
    """Test structured comment parsing."""

    def test_sections_and_order(self):
        parameters = parse_parameters(SOURCE)

        assert [(p.section, p.name) for p in parameters] == [
            ("Size", "width"),
            ("Size", "wall"),
            ("Size", "height"),
            ("Style", "style"),
        ]

    def test_range_forms(self):
        width, wall, height, _ = parse_parameters(SOURCE)

        assert (width.kind, width.minimum, width.step, width.maximum) == ("range", 10, None, 100)
        assert (wall.minimum, wall.step, wall.maximum) == (0.5, 0.5, 5)
        assert (height.minimum, height.maximum) == (0, 50)
        assert width.default == "40"

    def test_options_and_description(self):
        width, _, _, style = parse_parameters(SOURCE)

        assert style.kind == "options"
        assert style.options == ("round", "square", "hex")
        assert style.default == '"round"'
        assert width.description == "Outer width in mm"

    def test_plain_assignments_ignored(self):
        assert parse_parameters("size = 10;\ncube(size);") == []


@pytest.mark.asyncio
class TestOpenScadWorkspace:
    """Test error mapping when the executable is unavailable."""

    async def test_missing_executable_fails_render(self):
        workspace = OpenScadWorkspace(
            openscad_path="/nonexistent/openscad", debounce=0, source="cube(1);"
        )

        with pytest.raises(RenderFailed):
            await workspace.render(immediate=True)

    async def test_missing_executable_fails_syntax_check(self):
        workspace = OpenScadWorkspace(openscad_path="/nonexistent/openscad", source="cube(1);")

        with pytest.raises(SyntaxCheckFailed):
            await workspace.check_syntax()

        assert workspace.parameters == []

    async def test_non_executable_path_fails_render(self, tmp_path):
        not_executable = tmp_path / "openscad"
        not_executable.write_text("", encoding="utf-8")
        not_executable.chmod(0o644)
        workspace = OpenScadWorkspace(
            openscad_path=str(not_executable), debounce=0, source="cube(1);"
        )

        with pytest.raises(RenderFailed):
            await workspace.render(immediate=True)

    def test_set_source(self):
        workspace = OpenScadWorkspace(openscad_path="openscad", debounce=0)

        workspace.set_source("sphere(2);")

        assert workspace.source == "sphere(2);"
