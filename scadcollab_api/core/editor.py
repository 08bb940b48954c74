"""Source editing and rendering collaborator.

The orchestrator only depends on the :class:`SourceEditor` protocol. The
shipped implementation, :class:`OpenScadWorkspace`, drives the ``openscad``
command line tool in a scratch directory.
"""

import asyncio
import logging
import re
import tempfile
from pathlib import Path
from typing import Protocol

from ..config import settings
from ..errors import RenderFailed, SyntaxCheckFailed
from ..models import CustomizerParameter

logger = logging.getLogger(__name__)


class SourceEditor(Protocol):
    """What the generation pipeline needs from the editor and renderer."""

    @property
    def source(self) -> str: ...

    def set_source(self, source: str) -> None: ...

    async def check_syntax(self) -> None:
        """Raise SyntaxCheckFailed on invalid source."""

    async def render(self, preview: bool = True, immediate: bool = False) -> None:
        """Raise RenderFailed when the renderer gives up."""

    async def export(self) -> bytes: ...


_SECTION = re.compile(r"^\s*/\*\s*\[([^\]]+)\]\s*\*/\s*$")
_PARAMETER = re.compile(r"^\s*([A-Za-z_]\w*)\s*=\s*([^;]+?)\s*;\s*//\s*\[([^\]]*)\]")
_DESCRIPTION = re.compile(r"^\s*//\s*(.+?)\s*$")
_DECLARATION = re.compile(r"^\s*(module|function)\s")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")


def _parameter(
    name: str, default: str, annotation: str, section: str, description: str
) -> CustomizerParameter | None:
    parts = [p.strip() for p in annotation.split(":")]
    if all(_NUMBER.match(p) for p in parts) and 1 <= len(parts) <= 3:
        numbers = [float(p) for p in parts]
        if len(numbers) == 1:
            minimum, step, maximum = 0.0, None, numbers[0]
        elif len(numbers) == 2:
            minimum, step, maximum = numbers[0], None, numbers[1]
        else:
            minimum, step, maximum = numbers
        return CustomizerParameter(
            name=name,
            default=default,
            section=section,
            kind="range",
            minimum=minimum,
            maximum=maximum,
            step=step,
            description=description,
        )

    options = tuple(o.strip().strip("\"'") for o in annotation.split(",") if o.strip())
    if not options:
        return None
    return CustomizerParameter(
        name=name,
        default=default,
        section=section,
        kind="options",
        options=options,
        description=description,
    )


def parse_parameters(source: str) -> list[CustomizerParameter]:
    """Customizer parameters declared in structured comments.

    Parameters follow a ``/* [Section] */`` header and carry ``// [min:max]``,
    ``// [min:step:max]`` or ``// [a, b, c]`` after the assignment. Parsing
    stops at the first module or function, and the ``[Hidden]`` section is
    skipped, matching the OpenSCAD customizer.
    """
    parameters: list[CustomizerParameter] = []
    section = "Parameters"
    description = ""

    for line in source.splitlines():
        if _DECLARATION.match(line):
            break

        section_match = _SECTION.match(line)
        if section_match:
            section = section_match.group(1).strip()
            description = ""
            continue

        parameter_match = _PARAMETER.match(line)
        if parameter_match:
            if section.lower() != "hidden":
                name, default, annotation = parameter_match.groups()
                parameter = _parameter(name, default.strip(), annotation, section, description)
                if parameter is not None:
                    parameters.append(parameter)
            description = ""
            continue

        description_match = _DESCRIPTION.match(line)
        description = description_match.group(1) if description_match else ""

    return parameters


class OpenScadWorkspace:
    """SourceEditor backed by the ``openscad`` executable.

    A successful syntax check refreshes :attr:`parameters`. Renders that are
    not ``immediate`` wait ``debounce`` seconds first.
    """

    def __init__(
        self,
        openscad_path: str | None = None,
        debounce: float | None = None,
        source: str = "",
    ):
        self.openscad_path = openscad_path or settings.openscad_path
        self.debounce = settings.render_debounce_seconds if debounce is None else debounce
        self._source = source
        self.parameters: list[CustomizerParameter] = []
        self.last_output: bytes | None = None

    @property
    def source(self) -> str:
        return self._source

    def set_source(self, source: str) -> None:
        self._source = source

    async def _run(self, output_name: str, *flags: str) -> bytes:
        """Run openscad on the current source and return the output file."""
        with tempfile.TemporaryDirectory(prefix="scadcollab-") as tmp:
            workdir = Path(tmp)
            input_path = workdir / "model.scad"
            output_path = workdir / output_name
            input_path.write_text(self._source, encoding="utf-8")

            try:
                process = await asyncio.create_subprocess_exec(
                    self.openscad_path,
                    "-o",
                    str(output_path),
                    *flags,
                    str(input_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as e:
                raise RenderFailed(f"OpenSCAD executable not found: {self.openscad_path}") from e
            except OSError as e:
                raise RenderFailed(f"Cannot run OpenSCAD at {self.openscad_path}: {e}") from e

            _, stderr = await process.communicate()
            if process.returncode != 0:
                raise RenderFailed(stderr.decode("utf-8", errors="replace").strip())
            if not output_path.exists():
                raise RenderFailed(f"OpenSCAD produced no {output_name}")
            return output_path.read_bytes()

    async def check_syntax(self) -> None:
        try:
            await self._run("model.ast")
        except RenderFailed as e:
            raise SyntaxCheckFailed(str(e)) from e
        self.parameters = parse_parameters(self._source)

    async def render(self, preview: bool = True, immediate: bool = False) -> None:
        if not immediate and self.debounce > 0:
            await asyncio.sleep(self.debounce)
        if preview:
            self.last_output = await self._run(
                "preview.png", "--preview", "--viewall", "--autocenter", "--imgsize=800,600"
            )
        else:
            self.last_output = await self._run("model.stl")
        logger.debug(f"Rendered {len(self.last_output)} bytes (preview={preview})")

    async def export(self) -> bytes:
        """Full render to STL."""
        return await self._run("model.stl")
