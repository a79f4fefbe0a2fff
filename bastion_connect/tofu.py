"""
OpenTofu driver.

The embedded template is copied into <workdir>/config and every command runs
there with the variable file and state file passed explicitly.
"""

import json
import subprocess
from importlib import resources
from pathlib import Path

from .config import Settings
from .console import command, detail
from .errors import ExternalCallFailure, PersistenceFailure

TEMPLATE_PACKAGE = "bastion_connect"
TEMPLATE_DIR = "templates"


class TofuDriver:
    """Runs init/apply/destroy/output against one bastion working directory."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def config_dir(self) -> Path:
        return self.settings.config_dir

    def _base(self) -> list[str]:
        return [self.settings.tofu_bin, f'-chdir={self.config_dir}']

    def _run(self, args: list[str], capture: bool = False) -> subprocess.CompletedProcess:
        cmd = self._base() + args
        if not capture:
            command(cmd)
        try:
            return subprocess.run(cmd, capture_output=capture, text=True)
        except FileNotFoundError as e:
            raise ExternalCallFailure(f"{self.settings.tofu_bin} not found on PATH") from e

    def stage_template(self):
        """Copy the packaged template into the working directory."""
        source = resources.files(TEMPLATE_PACKAGE).joinpath(TEMPLATE_DIR)
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            for entry in source.iterdir():
                if entry.name.endswith('.tf'):
                    (self.config_dir / entry.name).write_text(entry.read_text())
        except OSError as e:
            raise PersistenceFailure(f"Cannot stage template in {self.config_dir}: {e}") from e
        detail(f"Template staged in {self.config_dir}")

    def init(self):
        result = self._run(['init', '-input=false'])
        if result.returncode != 0:
            raise ExternalCallFailure(f"tofu init failed (exit {result.returncode})")

    def apply(self):
        result = self._run([
            'apply', '-auto-approve', '-input=false',
            f'-var-file={self.settings.vars_path}',
            f'-state={self.settings.state_path}',
        ])
        if result.returncode != 0:
            raise ExternalCallFailure(f"tofu apply failed (exit {result.returncode})")

    def destroy(self):
        result = self._run([
            'destroy', '-auto-approve', '-input=false',
            f'-var-file={self.settings.vars_path}',
            f'-state={self.settings.state_path}',
        ])
        if result.returncode != 0:
            raise ExternalCallFailure(f"tofu destroy failed (exit {result.returncode})")

    def outputs(self) -> dict:
        """Return {name: value} from the state file, or {} when there is no state."""
        if not self.settings.state_path.exists():
            return {}
        if not self.config_dir.exists():
            self.stage_template()

        result = self._run(['output', '-json', f'-state={self.settings.state_path}'], capture=True)
        if result.returncode != 0:
            raise ExternalCallFailure(f"tofu output failed: {result.stderr.strip()}")
        try:
            raw = json.loads(result.stdout or '{}')
        except json.JSONDecodeError as e:
            raise ExternalCallFailure(f"tofu output returned invalid JSON: {e}") from e
        return {name: item.get('value') for name, item in raw.items()}
