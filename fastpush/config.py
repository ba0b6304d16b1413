"""Layered runtime configuration for fastpush.

Precedence order (low -> high):
1) argparse defaults
2) pyproject.toml ([tool.fastpush])
3) git config fastpush.* (global, then local repository)
4) environment variables FASTPUSH_*
5) explicit CLI options
"""
from __future__ import annotations

from argparse import Namespace, ArgumentParser
from dataclasses import dataclass
from pathlib import Path
import logging as log
import os

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .executor import run_git
from .errors import GitCommandError

logger = log.getLogger("fastpush.config")

SECTION = "fastpush"


@dataclass(frozen=True)
class OptionSpec:
    dest: str
    git_key: str
    env_key: str
    kind: str  # "bool" | "str"
    choices: tuple[str, ...] | None = None
    secret: bool = False


SPECS: tuple[OptionSpec, ...] = (
    OptionSpec("branch", "branch", "FASTPUSH_BRANCH", "str"),
    OptionSpec("message", "message", "FASTPUSH_MESSAGE", "str"),
    OptionSpec("remote_url", "remote-url", "FASTPUSH_REMOTE_URL", "str"),
    OptionSpec("private", "private", "FASTPUSH_PRIVATE", "bool"),
    OptionSpec("description", "description", "FASTPUSH_DESCRIPTION", "str"),
    OptionSpec("gh_token", "gh-token", "FASTPUSH_GH_TOKEN", "str",
               secret=True),
    OptionSpec("quiet", "quiet", "FASTPUSH_QUIET", "bool"),
    OptionSpec("plain", "plain", "FASTPUSH_PLAIN", "bool"),
    OptionSpec("verbose", "verbose", "FASTPUSH_VERBOSE", "bool"),
    OptionSpec("debug", "debug", "FASTPUSH_DEBUG", "bool"),
    OptionSpec("auto_fix", "auto-fix", "FASTPUSH_AUTO_FIX", "bool"),
    OptionSpec("ci", "ci", "FASTPUSH_CI", "bool"),
    OptionSpec("interactive", "interactive", "FASTPUSH_INTERACTIVE", "bool"),
    OptionSpec("check_json", "check-json", "FASTPUSH_CHECK_JSON", "bool"),
)

SPEC_BY_DEST: dict[str, OptionSpec] = {spec.dest: spec for spec in SPECS}


def _parse_bool_like(raw: object) -> bool | None:
    if isinstance(raw, bool): return raw
    if not isinstance(raw, str): return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}: return True
    if value in {"0", "false", "no", "off"}: return False
    return None


def _resolve_scan_root(path: str) -> Path:
    target = Path(path).expanduser().resolve()
    return target.parent if target.is_file() else target


def _repo_root(path: str) -> str | None:
    try: out = run_git(["rev-parse", "--show-toplevel"],
              str(_resolve_scan_root(path)))
    except (GitCommandError, OSError): return None
    return out.stdout or None


def _find_pyproject(path: str) -> Path | None:
    for folder in (_resolve_scan_root(path),
                   *_resolve_scan_root(path).parents):
        candidate = folder / "pyproject.toml"
        if candidate.is_file(): return candidate
    return None


def _diag(level: str, source: str, key: str, raw: object,
          message: str) -> dict[str, str]:
    return {
        "level": level,
        "source": source,
        "key": key,
        "raw": str(raw),
        "message": message,
    }


def _load_pyproject_overrides(path: str) -> tuple[dict[str, object],
                                                   list[dict[str, str]],
                                                   str | None]:
    pyproject = _find_pyproject(path)
    if pyproject is None: return {}, [], None
    try: data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"failed to parse pyproject.toml: {exc}"
        return {}, [_diag("error", "pyproject", f"tool.{SECTION}", "",
               msg)], str(pyproject)

    table = data.get("tool", {}).get(SECTION)
    if table is None: return {}, [], str(pyproject)
    if not isinstance(table, dict):
        msg = f"tool.{SECTION} must be a TOML table, e.g. [tool.{SECTION}]"
        return {}, [_diag("error", "pyproject", f"tool.{SECTION}",
               type(table).__name__, msg)], str(pyproject)

    by_git_key = {spec.git_key: spec for spec in SPECS}
    values: dict[str, object] = {}
    diagnostics: list[dict[str, str]] = []
    for raw_key, raw_val in table.items():
        key  = str(raw_key).strip().lower().replace("_", "-")
        spec = by_git_key.get(key)
        if spec is None:
            diagnostics.append(_diag("warning", "pyproject", str(raw_key),
                raw_val, f"unknown key in [tool.{SECTION}]"))
            continue
        values[spec.dest] = raw_val
    return values, diagnostics, str(pyproject)


def _read_git_scope(scope: str, cwd: str) -> dict[str, str]:
    try: out = run_git(["config", scope, "--get-regexp",
              rf"^{SECTION}\."], cwd)
    except (GitCommandError, OSError):
        # exit code 1 just means no matching keys
        return {}
    values: dict[str, str] = {}
    for line in out.lines():
        key, _, value = line.partition(" ")
        values[key.strip()] = value.strip()
    return values


def _load_git_overrides(path: str) -> dict[str, str]:
    values = _read_git_scope("--global", str(_resolve_scan_root(path)))
    repo   = _repo_root(path)
    if repo: values.update(_read_git_scope("--local", repo))
    return {spec.dest: values[f"{SECTION}.{spec.git_key}"]
            for spec in SPECS if f"{SECTION}.{spec.git_key}" in values}


def _load_env_overrides() -> dict[str, str]:
    return {spec.dest: os.environ[spec.env_key] for spec in SPECS
            if spec.env_key in os.environ}


def _coerce(dest: str, raw: object, source: str,
            diagnostics: list[dict[str, str]]) -> object | None:
    spec = SPEC_BY_DEST.get(dest)
    if spec is None: return None
    if spec.kind == "bool":
        value = _parse_bool_like(raw)
        if value is None:
            diagnostics.append(_diag("warning", source, dest, raw,
                f"invalid boolean value for {dest}; use true/false"))
        return value
    if not isinstance(raw, str):
        diagnostics.append(_diag("warning", source, dest, raw,
            f"invalid value type for {dest}; expected string"))
        return None
    if spec.choices and raw not in spec.choices:
        choices = ", ".join(spec.choices)
        diagnostics.append(_diag("warning", source, dest, raw,
            f"invalid value for {dest}; expected one of: {choices}"))
        return None
    return raw


def _explicit_cli_dests(argv: list[str], parser: ArgumentParser) -> set[str]:
    mapping  = parser._option_string_actions
    explicit: set[str] = set()
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--": break
        if not token.startswith("-"):
            i += 1
            continue
        action = mapping.get(token.split("=", 1)[0])
        if action is None:
            i += 1
            continue
        explicit.add(action.dest)
        takes_value = action.nargs != 0
        if "=" not in token and takes_value and i + 1 < len(argv):
            i += 2
            continue
        i += 1
    return explicit


def apply_layered_config(args: Namespace, argv: list[str],
                         parser: ArgumentParser) -> Namespace:
    """Apply pyproject/git/env overrides unless set explicitly by CLI."""
    merged   = Namespace(**vars(args))
    path     = getattr(merged, "path", ".")
    explicit = _explicit_cli_dests(argv, parser)
    py_vals, py_diags, pyproject_path = _load_pyproject_overrides(path)
    layers = (
        ("pyproject", py_vals),
        ("git", _load_git_overrides(path)),
        ("env", _load_env_overrides()),
    )
    sources = {k: "default" for k in vars(merged)}
    sources.update({dest: "cli" for dest in explicit})
    diagnostics: list[dict[str, str]] = list(py_diags)

    for spec in SPECS:
        if spec.dest in explicit: continue
        for source, values in layers:
            if spec.dest not in values: continue
            value = _coerce(spec.dest, values[spec.dest], source,
                    diagnostics)
            if value is None: continue
            setattr(merged, spec.dest, value)
            sources[spec.dest] = source

    for diag in diagnostics:
        logger.warning("config %s from %s: %s", diag["key"],
            diag["source"], diag["message"])
    setattr(merged, "_fastpush_config_sources", sources)
    setattr(merged, "_fastpush_config_diagnostics", diagnostics)
    setattr(merged, "_fastpush_config_files", {"pyproject": pyproject_path})
    return merged


def effective_config(args: Namespace) -> dict[str, dict[str, object]]:
    """Configured values with their source; secrets are masked."""
    sources = getattr(args, "_fastpush_config_sources", {})
    report: dict[str, dict[str, object]] = {}
    for spec in SPECS:
        value = getattr(args, spec.dest, None)
        if spec.secret and value: value = "<redacted>"
        report[spec.dest] = {
            "value": value,
            "source": sources.get(spec.dest, "default"),
        }
    return report
