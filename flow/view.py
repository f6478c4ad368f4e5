"""Template loading, caching and rendering by naming convention."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import jinja2

CONTENT_TEMPLATE = "content"
TEMPLATE_SUFFIX = ".html"


class ViewError(Exception):
    """Raised when a view cannot be found, parsed or rendered."""


class _TemplateSet:
    """Named definitions gathered from several files; later files win."""

    def __init__(self, base: jinja2.Template, definitions: dict[str, Callable[..., Any]]) -> None:
        self._base = base
        self._definitions = definitions

    def lookup(self, name: str) -> bool:
        return name in self._definitions

    def execute(self, name: str, data: Any) -> str:
        """Render the named definition with data bound to `data` (and its keys, if a mapping)."""
        render = self._definitions.get(name)
        if render is None:
            raise ViewError(f'no template "{name}" in set')
        variables = dict(data) if isinstance(data, Mapping) else {}
        variables["data"] = data
        context = self._base.new_context(variables)
        context.blocks.update({key: [func] for key, func in self._definitions.items()})
        return "".join(render(context))


def _glob_html(directory: Path) -> list[Path]:
    return sorted(directory.glob(f"*{TEMPLATE_SUFFIX}"))


@dataclass(eq=False)
class ViewManager:
    """Finds views under template_dir, parses them with layouts and partials, and caches them."""

    template_dir: str = "views"
    default_layout: str = ""
    func_map: dict[str, Callable[..., Any]] = field(default_factory=dict)
    dev_mode: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _cache: dict[str, _TemplateSet] = field(default_factory=dict, init=False, repr=False)

    def render(self, name: str, data: Any, ctx: Any) -> None:
        """Render the view `name` (e.g. "users/show") into the context's response."""
        templates = self._load(name)
        exec_name = CONTENT_TEMPLATE
        if not templates.lookup(exec_name):
            exec_name = Path(name).name + TEMPLATE_SUFFIX
        ctx.render_template(templates, exec_name, data)

    def _load(self, name: str) -> _TemplateSet:
        with self._lock:
            dev_mode = self.dev_mode
            if not dev_mode and name in self._cache:
                return self._cache[name]
            template_dir = self.template_dir
            default_layout = self.default_layout
            funcs = dict(self.func_map or {})

        files = self._candidate_files(Path(template_dir), default_layout, name)
        templates = self._parse(template_dir, files, funcs)

        if not dev_mode:
            with self._lock:
                self._cache[name] = templates
        return templates

    @staticmethod
    def _candidate_files(root: Path, default_layout: str, name: str) -> list[Path]:
        files: list[Path] = []
        if default_layout:
            layout = root / default_layout
            if layout.exists():
                files.append(layout)
        else:
            files.extend(_glob_html(root / "layouts"))
        files.extend(_glob_html(root / "partials"))
        files.extend(_glob_html(root / "shared"))

        view = root / f"{name}{TEMPLATE_SUFFIX}"
        if not view.exists():
            raise ViewError(f"view file not found: {view}")
        files.append(view)
        return files

    @staticmethod
    def _parse(template_dir: str, files: list[Path], funcs: dict[str, Callable[..., Any]]) -> _TemplateSet:
        env = jinja2.Environment(loader=jinja2.FileSystemLoader(template_dir), autoescape=True)
        env.globals.update(funcs)
        definitions: dict[str, Callable[..., Any]] = {}
        base: jinja2.Template | None = None
        for path in files:
            try:
                template = env.from_string(path.read_text(encoding="utf-8"))
            except (OSError, jinja2.TemplateError) as exc:
                listed = [str(f) for f in files]
                raise ViewError(f"parse templates {listed}: {path}: {exc}") from exc
            definitions[path.name] = template.root_render_func
            definitions.update(template.blocks)
            base = template
        assert base is not None
        return _TemplateSet(base, definitions)

    def set_default_layout(self, layout: str) -> None:
        """Use `layout` (relative to template_dir) instead of scanning layouts/."""
        with self._lock:
            self.default_layout = layout
            self._cache = {}

    def set_func_map(self, funcs: dict[str, Callable[..., Any]]) -> None:
        """Replace the functions available to templates and drop cached templates."""
        with self._lock:
            self.func_map = funcs
            self._cache = {}

    def set_dev_mode(self, dev: bool) -> None:
        """In dev mode templates are reparsed on every render."""
        with self._lock:
            self.dev_mode = dev
            if dev:
                self._cache = {}