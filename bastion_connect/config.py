"""
Runtime settings.

CLI flags win over environment variables, which win over the defaults below.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# ─────────────────────────────────────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_WORKDIR = Path.home() / ".bastion-connect"
DEFAULT_TOFU_BIN = "tofu"
DEFAULT_IP_URL = "https://checkip.amazonaws.com"
DEFAULT_SSH_USER = "ec2-user"
DEFAULT_INSTANCE_TYPE = "t3.micro"

VARS_FILE = "bastion.tfvars"
STATE_FILE = "terraform.tfstate"
KEY_FILE = "bastion_key.pem"
CONFIG_DIR = "config"

IP_LOOKUP_TIMEOUT = 10


@dataclass
class Settings:
    workdir: Path = DEFAULT_WORKDIR
    profile: str | None = None
    region: str | None = None
    tofu_bin: str = DEFAULT_TOFU_BIN
    ip_url: str = DEFAULT_IP_URL
    ssh_user: str = DEFAULT_SSH_USER
    instance_type: str = DEFAULT_INSTANCE_TYPE
    verbose: bool = False

    @property
    def vars_path(self) -> Path:
        return self.workdir / VARS_FILE

    @property
    def state_path(self) -> Path:
        return self.workdir / STATE_FILE

    @property
    def key_path(self) -> Path:
        return self.workdir / KEY_FILE

    @property
    def config_dir(self) -> Path:
        return self.workdir / CONFIG_DIR

    @classmethod
    def from_args(cls, args) -> 'Settings':
        """Build settings from parsed argparse args with environment fallback."""
        workdir = getattr(args, 'workdir', None) or os.environ.get('BASTION_WORKDIR')
        return cls(
            workdir=Path(workdir).expanduser().resolve() if workdir else DEFAULT_WORKDIR,
            profile=getattr(args, 'profile', None) or os.environ.get('AWS_PROFILE'),
            region=getattr(args, 'region', None) or os.environ.get('AWS_DEFAULT_REGION'),
            tofu_bin=os.environ.get('BASTION_TOFU_BIN', DEFAULT_TOFU_BIN),
            ip_url=os.environ.get('BASTION_IP_URL', DEFAULT_IP_URL),
            ssh_user=os.environ.get('BASTION_SSH_USER', DEFAULT_SSH_USER),
            instance_type=os.environ.get('BASTION_INSTANCE_TYPE', DEFAULT_INSTANCE_TYPE),
            verbose=bool(getattr(args, 'verbose', False)),
        )
