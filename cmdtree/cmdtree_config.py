"""
Runner settings from defaults, `cmdtree.yaml` and the environment.
"""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from cmdtree.cmdtree_datatypes import ScriptLoadError

CONFIG_FILENAME = "cmdtree.yaml"
DEFAULT_SCRIPT = "Make.cmd"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_flag(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ScriptLoadError(f"Invalid boolean for {name}: {raw!r}")


@dataclass
class RunnerConfig:
    """Settings for one cmdtree run.

    Later sources win: defaults, then `cmdtree.yaml` in the working
    directory, then environment variables.
    """
    script: str = DEFAULT_SCRIPT
    shell: str = "sh"
    color: bool = False
    debug: bool = False

    @classmethod
    def load(cls, cwd: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None,
             isatty: Optional[bool] = None) -> 'RunnerConfig':
        base = Path(cwd or os.getcwd())
        env = os.environ if environ is None else environ
        if isatty is None:
            isatty = sys.stdout.isatty()

        cfg = cls(script=str(base / DEFAULT_SCRIPT), color=isatty)

        config_path = base / CONFIG_FILENAME
        if config_path.is_file():
            cfg._apply_file(config_path)

        if env.get("CMDTREE_FILE"):
            cfg.script = str(base / env["CMDTREE_FILE"])
        if env.get("CMDTREE_SHELL"):
            cfg.shell = env["CMDTREE_SHELL"]
        if "CMDTREE_COLOR" in env:
            cfg.color = _parse_flag("CMDTREE_COLOR", env["CMDTREE_COLOR"])
        if "NO_COLOR" in env:
            cfg.color = False
        if env.get("CMDTREE_DEBUG"):
            cfg.debug = True
        return cfg

    def _apply_file(self, config_path: Path):
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ScriptLoadError(f"Cannot load {config_path}: {e}") from e
        if data is None:
            return
        if not isinstance(data, dict):
            raise ScriptLoadError(f"{config_path} must contain a mapping, not {type(data).__name__}")
        if "script" in data:
            # Relative to the config file, not to wherever the tool was started
            self.script = str(config_path.parent / str(data["script"]))
        if "shell" in data:
            self.shell = str(data["shell"])
        if "color" in data:
            self.color = _parse_flag("color", data["color"])
