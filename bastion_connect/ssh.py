"""
SSH session building.

Direct sessions go to the bastion with the generated key. Proxied sessions
reach a downstream user@host by tunnelling through the bastion: the inner ssh
(ProxyCommand) uses the generated key, the outer one the operator's own
identity.
"""

import os
import re
import shlex
import subprocess
from pathlib import Path

from .errors import ExternalCallFailure, InvalidTarget, PersistenceFailure

TARGET_PATTERN = re.compile(r'^([A-Za-z0-9._-]+)@([A-Za-z0-9.]+)$')
SSH_CONNECTION_ERROR = 255

_SSH_OPTIONS = [
    '-o', 'StrictHostKeyChecking=accept-new',
    '-o', 'IdentitiesOnly=yes',
]


def validate_target(target: str) -> tuple[str, str]:
    """Split user@host, rejecting anything but alphanumerics and dots in the host."""
    match = TARGET_PATTERN.match(target or '')
    if not match:
        raise InvalidTarget(
            f"'{target}' is not a valid destination; expected user@host "
            "(host may contain only letters, digits and dots)"
        )
    return match.group(1), match.group(2)


def build_command(public_ip: str, key_path: Path, bastion_user: str, target: str | None = None) -> list[str]:
    bastion = f'{bastion_user}@{public_ip}'
    if not target:
        return ['ssh', '-i', str(key_path), *_SSH_OPTIONS, bastion]

    user, host = validate_target(target)
    proxy = ' '.join(shlex.quote(part) for part in [
        'ssh', '-i', str(key_path), *_SSH_OPTIONS, '-W', f'{host}:22', bastion,
    ])
    return ['ssh', '-o', f'ProxyCommand={proxy}', f'{user}@{host}']


def write_private_key(key_path: Path, material: str):
    """Write key material with mode 0600, replacing any previous key."""
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.unlink(missing_ok=True)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, 'w') as f:
            f.write(material if material.endswith('\n') else material + '\n')
    except OSError as e:
        raise PersistenceFailure(f"Cannot write private key {key_path}: {e}") from e


def run_session(cmd: list[str]) -> int:
    try:
        result = subprocess.run(cmd)
    except FileNotFoundError as e:
        raise ExternalCallFailure("ssh not found on PATH") from e
    if result.returncode == SSH_CONNECTION_ERROR:
        raise ExternalCallFailure(f"ssh could not connect (exit {SSH_CONNECTION_ERROR})")
    return result.returncode
