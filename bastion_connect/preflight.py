"""Pre-flight checks for the CLI tools each command shells out to."""

import subprocess
from pathlib import Path

from .console import console
from .errors import ValidationError

INSTALL_HINTS = {
    'tofu': 'brew install opentofu  OR  https://opentofu.org/docs/intro/install/',
    'terraform': 'brew install terraform  OR  https://developer.hashicorp.com/terraform/install',
    'ssh': 'install an OpenSSH client (openssh-client / openssh)',
}


def check_tool_installed(tool: str) -> tuple[bool, str | None]:
    """Check if a CLI tool is installed and return its version line."""
    cmd = [tool, '-V'] if tool == 'ssh' else [tool, 'version']
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False, None

    if result.returncode != 0:
        return False, None
    # ssh -V writes to stderr
    output = result.stdout.strip() or result.stderr.strip()
    return True, output.split('\n')[0]


def require_tools(*tools: str):
    for tool in tools:
        installed, info = check_tool_installed(tool)
        if not installed:
            hint = INSTALL_HINTS.get(Path(tool).name, f"install {tool}")
            raise ValidationError(f"{tool} not found. Install: {hint}")
        console.print(f"  [green]✓[/green] {tool}: [dim]{info}[/dim]")
