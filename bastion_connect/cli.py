"""
bastion-connect command line.

  bastion launch [--private-subnet-id ID --public-subnet-id ID --security-group-id ID]
  bastion ssh [user@host]
  bastion terminate
  bastion status

One bastion per working directory. Concurrent invocations against the same
working directory are not supported; no file locking is done.
"""

import argparse
import re
import shlex
import sys

import questionary
from questionary import Style
from rich.panel import Panel
from rich.table import Table

from . import console as out
from .config import Settings
from .console import console
from .errors import BastionError, ValidationError
from .lifecycle import LifecycleState, check_state, query_status
from .pipeline import LaunchRequest, ProvisioningPipeline
from .preflight import require_tools
from .registry import VariableRegistry
from .ssh import build_command, run_session, validate_target, write_private_key
from .tofu import TofuDriver
from .topology import TopologyResolver, get_aws_session

SUBNET_PATTERN = re.compile(r'^subnet-[0-9a-f]{8,17}$')
SECURITY_GROUP_PATTERN = re.compile(r'^sg-[0-9a-f]{8,17}$')

PROMPT_STYLE = Style([
    ('qmark', 'fg:cyan bold'),
    ('question', 'bold'),
    ('answer', 'fg:green'),
    ('pointer', 'fg:cyan bold'),
    ('highlighted', 'fg:cyan'),
    ('selected', 'fg:green'),
])


# ─────────────────────────────────────────────────────────────────────────────
# INPUT VALIDATION & PROMPTS
# ─────────────────────────────────────────────────────────────────────────────

def _check_id(value: str | None, pattern: re.Pattern, flag: str):
    if value is not None and not pattern.match(value):
        raise ValidationError(f"{flag}: '{value}' is not a valid id")


def validate_launch_args(args, interactive: bool):
    _check_id(args.private_subnet_id, SUBNET_PATTERN, '--private-subnet-id')
    _check_id(args.public_subnet_id, SUBNET_PATTERN, '--public-subnet-id')
    _check_id(args.security_group_id, SECURITY_GROUP_PATTERN, '--security-group-id')

    missing = [
        flag for flag, value in [
            ('--private-subnet-id', args.private_subnet_id),
            ('--public-subnet-id', args.public_subnet_id),
            ('--security-group-id', args.security_group_id),
        ] if not value
    ]
    if missing and not interactive:
        raise ValidationError(f"Missing required arguments: {', '.join(missing)}")


def _ask(question) -> str:
    answer = question.ask()
    if not answer:
        raise ValidationError("Cancelled")
    return answer


def prompt_launch_request(args, resolver: TopologyResolver) -> LaunchRequest:
    """Fill in launch identifiers that were not passed as flags."""
    private_subnet_id = args.private_subnet_id
    public_subnet_id = args.public_subnet_id
    security_group_id = args.security_group_id

    if not (private_subnet_id and public_subnet_id):
        subnets = resolver.list_subnets()
        if not subnets:
            raise ValidationError("No subnets found in this region")

        if not private_subnet_id:
            private_subnet_id = _ask(questionary.select(
                "Private subnet (hosts to reach):",
                choices=[questionary.Choice(f"{s['id']} - {s['name']} ({s['az']}, {s['vpc_id']})", value=s['id'])
                         for s in subnets],
                style=PROMPT_STYLE,
            ))

        if not public_subnet_id:
            private_vpc = next((s['vpc_id'] for s in subnets if s['id'] == private_subnet_id), None)
            if private_vpc is None:
                raise ValidationError(f"Subnet {private_subnet_id} not found in this region")
            same_vpc = [s for s in subnets if s['vpc_id'] == private_vpc and s['id'] != private_subnet_id]
            candidates = [s for s in same_vpc if s['public']] or same_vpc
            if not candidates:
                raise ValidationError(f"No other subnet in {private_vpc} to host the bastion")
            public_subnet_id = _ask(questionary.select(
                "Public subnet (bastion placement):",
                choices=[questionary.Choice(f"{s['id']} - {s['name']} ({s['az']})", value=s['id'])
                         for s in candidates],
                style=PROMPT_STYLE,
            ))

    if not security_group_id:
        vpc_id = resolver.vpc_for_subnet(private_subnet_id)
        groups = resolver.list_security_groups(vpc_id)
        if groups:
            security_group_id = _ask(questionary.select(
                "Security group of the private hosts:",
                choices=[questionary.Choice(f"{g['id']} - {g['name']}", value=g['id']) for g in groups],
                style=PROMPT_STYLE,
            ))
        else:
            security_group_id = _ask(questionary.text(
                "Security group ID (sg-xxx):",
                validate=lambda x: bool(SECURITY_GROUP_PATTERN.match(x)),
                style=PROMPT_STYLE,
            ))

    return LaunchRequest(private_subnet_id, public_subnet_id, security_group_id)


# ─────────────────────────────────────────────────────────────────────────────
# DISPLAY
# ─────────────────────────────────────────────────────────────────────────────

def display_parameters(registry: VariableRegistry):
    table = Table(title="Bastion Parameters", show_header=False, border_style="cyan")
    table.add_column("Name", style="dim")
    table.add_column("Value", style="green")
    for name, value in registry.items():
        table.add_row(name, value)
    console.print(table)


def display_status(settings: Settings, driver: TofuDriver):
    status = query_status(driver)
    table = Table(title="Bastion", show_header=False, border_style="cyan")
    table.add_column("Field", style="dim")
    table.add_column("Value", style="green")

    state_style = "green" if status.state == LifecycleState.RUNNING else "yellow"
    table.add_row("State", f"[{state_style}]{status.state.value}[/{state_style}]")
    table.add_row("Instance", status.instance_id or "-")
    table.add_row("Public IP", status.public_ip or "-")
    table.add_row("Working dir", str(settings.workdir))
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────────────

def cmd_launch(args, settings: Settings) -> int:
    validate_launch_args(args, interactive=sys.stdin.isatty())
    require_tools(settings.tofu_bin)

    driver = TofuDriver(settings)
    check_state(driver, expect_running=False)

    session = get_aws_session(settings.profile, settings.region)
    settings.region = settings.region or session.region_name
    if not settings.region:
        raise ValidationError("No AWS region configured. Use --region or AWS_DEFAULT_REGION.")
    out.step(f"Region: {settings.region}")

    resolver = TopologyResolver(session)
    request = prompt_launch_request(args, resolver)

    console.print(Panel("[bold]Computing parameters[/bold]", border_style="blue"))
    registry = VariableRegistry(settings.vars_path)
    ProvisioningPipeline(registry, resolver, settings).run(request)
    out.step(f"Wrote {settings.vars_path}")

    if args.dry_run or settings.verbose:
        display_parameters(registry)
    if args.dry_run:
        console.print("[yellow]🔸 Dry run - would run tofu apply[/yellow]")
        return 0

    console.print(Panel("[bold]Launching bastion[/bold]", border_style="blue"))
    driver.stage_template()
    driver.init()
    driver.apply()

    outputs = driver.outputs()
    if outputs.get('private_key'):
        write_private_key(settings.key_path, outputs['private_key'])
        out.step(f"Private key saved to {settings.key_path}")

    console.print(Panel(
        f"[bold green]✅ Bastion {outputs.get('instance_id')} running at {outputs.get('public_ip')}[/bold green]\n"
        "[dim]Connect with: bastion ssh [user@host][/dim]",
        border_style="green",
    ))
    return 0


def cmd_ssh(args, settings: Settings) -> int:
    if args.target:
        validate_target(args.target)
    require_tools('ssh')

    driver = TofuDriver(settings)
    status = check_state(driver, expect_running=True)
    if not status.public_ip:
        raise ValidationError(f"Bastion {status.instance_id} has no public IP")

    if not settings.key_path.exists():
        material = driver.outputs().get('private_key')
        if not material:
            raise ValidationError("No private key in engine outputs; relaunch the bastion")
        write_private_key(settings.key_path, material)
        out.detail(f"Restored private key to {settings.key_path}")

    cmd = build_command(status.public_ip, settings.key_path, status.ssh_user or settings.ssh_user, args.target)
    if args.print:
        console.print(shlex.join(cmd), markup=False, highlight=False, soft_wrap=True)
        return 0

    out.command(cmd)
    run_session(cmd)
    return 0


def cmd_terminate(args, settings: Settings) -> int:
    require_tools(settings.tofu_bin)

    driver = TofuDriver(settings)
    status = check_state(driver, expect_running=True)

    if not args.force:
        if not sys.stdin.isatty():
            raise ValidationError("terminate needs --force when not interactive")
        console.print(f"[bold red]This will destroy bastion {status.instance_id} and its firewall rules.[/bold red]")
        if not questionary.confirm("Terminate?", default=False, style=PROMPT_STYLE).ask():
            console.print("[yellow]Cancelled[/yellow]")
            return 0

    console.print(Panel("[bold]Terminating bastion[/bold]", border_style="red"))
    driver.stage_template()
    driver.init()
    driver.destroy()

    settings.key_path.unlink(missing_ok=True)
    out.step(f"Removed {settings.key_path}")
    console.print("\n[bold green]Bastion terminated.[/bold green]")
    return 0


def cmd_status(args, settings: Settings) -> int:
    display_status(settings, TofuDriver(settings))
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# MAIN
# ─────────────────────────────────────────────────────────────────────────────

class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit 1 like every other validation failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog='bastion', description="Temporary bastion host for private subnets")
    parser.add_argument('--profile', help='AWS profile to use')
    parser.add_argument('--region', help='AWS region')
    parser.add_argument('--workdir', help='Directory for variable, state and key files')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show detail output')
    sub = parser.add_subparsers(dest='command', required=True)

    launch = sub.add_parser('launch', help='Provision the bastion')
    launch.add_argument('--private-subnet-id', help='Subnet of the hosts to reach')
    launch.add_argument('--public-subnet-id', help='Subnet to place the bastion in')
    launch.add_argument('--security-group-id', help='Security group of the private hosts')
    launch.add_argument('--dry-run', action='store_true', help='Compute parameters without applying')
    launch.set_defaults(func=cmd_launch)

    ssh = sub.add_parser('ssh', help='SSH to the bastion or through it')
    ssh.add_argument('target', nargs='?', help='Downstream user@host')
    ssh.add_argument('--print', action='store_true', help='Print the ssh command instead of running it')
    ssh.set_defaults(func=cmd_ssh)

    terminate = sub.add_parser('terminate', help='Destroy the bastion and its rules')
    terminate.add_argument('-y', '--force', action='store_true', help='Skip confirmation')
    terminate.set_defaults(func=cmd_terminate)

    status = sub.add_parser('status', help='Show whether a bastion is running')
    status.set_defaults(func=cmd_status)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_args(args)
    out.set_verbose(settings.verbose)

    try:
        return args.func(args, settings)
    except BastionError as e:
        out.fail(str(e))
        return 1
    except KeyboardInterrupt:
        out.err_console.print("\n[yellow]Interrupted.[/yellow]")
        return 1


if __name__ == '__main__':
    sys.exit(main())
