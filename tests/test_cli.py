"""
Tests for CLI dispatch. Components are patched at the cli module boundary.
"""
import shlex

import pytest
from unittest.mock import MagicMock, patch

from bastion_connect import cli
from bastion_connect.lifecycle import BastionStatus, LifecycleState
from bastion_connect.ssh import build_command

RUNNING = BastionStatus(LifecycleState.RUNNING, "i-0abc123", "54.1.2.3", "ec2-user")
ABSENT = BastionStatus(LifecycleState.ABSENT)

LAUNCH_ARGS = [
    "launch",
    "--private-subnet-id", "subnet-0123456789abcdef0",
    "--public-subnet-id", "subnet-0fedcba987654321f",
    "--security-group-id", "sg-0123456789abcdef0",
]


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.setenv("BASTION_WORKDIR", str(tmp_path))
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    return tmp_path.resolve()


@pytest.fixture(autouse=True)
def no_preflight():
    with patch("bastion_connect.cli.require_tools"):
        yield


def test_launch_missing_args_non_interactive(capsys):
    with patch("bastion_connect.cli.sys.stdin") as stdin, \
         patch("bastion_connect.cli.get_aws_session") as session:
        stdin.isatty.return_value = False
        assert cli.main(["launch", "--private-subnet-id", "subnet-0123456789abcdef0"]) == 1
    session.assert_not_called()
    assert "--public-subnet-id" in capsys.readouterr().err


def test_launch_bad_id_rejected_before_external_calls():
    with patch("bastion_connect.cli.check_state") as guard:
        assert cli.main(["launch", "--private-subnet-id", "subnet-XYZ"]) == 1
    guard.assert_not_called()


def test_launch_rejected_when_already_running(capsys):
    with patch("bastion_connect.lifecycle.query_status", return_value=RUNNING), \
         patch("bastion_connect.cli.ProvisioningPipeline") as pipeline_cls, \
         patch("bastion_connect.cli.TofuDriver") as driver_cls:
        assert cli.main(LAUNCH_ARGS) == 1

    pipeline_cls.assert_not_called()
    driver_cls.return_value.apply.assert_not_called()
    assert "i-0abc123" in capsys.readouterr().err


def test_launch_runs_pipeline_then_apply(workdir):
    session = MagicMock(region_name="us-east-1")
    with patch("bastion_connect.cli.check_state", return_value=ABSENT), \
         patch("bastion_connect.cli.get_aws_session", return_value=session), \
         patch("bastion_connect.cli.ProvisioningPipeline") as pipeline_cls, \
         patch("bastion_connect.cli.TofuDriver") as driver_cls, \
         patch("bastion_connect.cli.write_private_key") as write_key:
        driver = driver_cls.return_value
        driver.outputs.return_value = {"instance_id": "i-0abc123", "public_ip": "54.1.2.3", "private_key": "KEY"}

        assert cli.main(LAUNCH_ARGS) == 0

    request = pipeline_cls.return_value.run.call_args[0][0]
    assert request.private_subnet_id == "subnet-0123456789abcdef0"
    assert request.security_group_id == "sg-0123456789abcdef0"
    driver.stage_template.assert_called_once()
    driver.init.assert_called_once()
    driver.apply.assert_called_once()
    write_key.assert_called_once_with(workdir / "bastion_key.pem", "KEY")


def test_launch_dry_run_skips_apply():
    session = MagicMock(region_name="us-east-1")
    with patch("bastion_connect.cli.check_state", return_value=ABSENT), \
         patch("bastion_connect.cli.get_aws_session", return_value=session), \
         patch("bastion_connect.cli.ProvisioningPipeline"), \
         patch("bastion_connect.cli.TofuDriver") as driver_cls:
        assert cli.main(LAUNCH_ARGS + ["--dry-run"]) == 0
    driver_cls.return_value.apply.assert_not_called()


def test_launch_without_region_fails(monkeypatch):
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
    session = MagicMock(region_name=None)
    with patch("bastion_connect.cli.check_state", return_value=ABSENT), \
         patch("bastion_connect.cli.get_aws_session", return_value=session), \
         patch("bastion_connect.cli.ProvisioningPipeline") as pipeline_cls, \
         patch("bastion_connect.cli.TofuDriver"):
        assert cli.main(LAUNCH_ARGS) == 1
    pipeline_cls.assert_not_called()


def test_ssh_invalid_target_fails_before_state_check():
    with patch("bastion_connect.cli.check_state") as guard, \
         patch("bastion_connect.cli.run_session") as run:
        assert cli.main(["ssh", "bob@db_internal!"]) == 1
    guard.assert_not_called()
    run.assert_not_called()


def test_ssh_not_running():
    with patch("bastion_connect.cli.TofuDriver") as driver_cls, \
         patch("bastion_connect.cli.run_session") as run:
        driver_cls.return_value.outputs.return_value = {}
        assert cli.main(["ssh"]) == 1
    run.assert_not_called()


def test_ssh_proxied_restores_key_and_runs(workdir):
    with patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver") as driver_cls, \
         patch("bastion_connect.cli.write_private_key") as write_key, \
         patch("bastion_connect.cli.run_session", return_value=0) as run:
        driver_cls.return_value.outputs.return_value = {"private_key": "KEY"}
        assert cli.main(["ssh", "bob@db.internal"]) == 0

    write_key.assert_called_once_with(workdir / "bastion_key.pem", "KEY")
    cmd = run.call_args[0][0]
    assert cmd[-1] == "bob@db.internal"


def test_ssh_print_does_not_connect(workdir, capsys):
    (workdir / "bastion_key.pem").write_text("KEY\n")
    with patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver"), \
         patch("bastion_connect.cli.run_session") as run:
        assert cli.main(["ssh", "--print"]) == 0
    run.assert_not_called()
    assert "ec2-user@54.1.2.3" in capsys.readouterr().out


def test_ssh_print_output_splits_back_to_command(workdir, capsys):
    (workdir / "bastion_key.pem").write_text("KEY\n")
    with patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver"), \
         patch("bastion_connect.cli.run_session") as run:
        assert cli.main(["ssh", "--print", "bob@db.internal"]) == 0
    run.assert_not_called()

    printed = capsys.readouterr().out.strip()
    expected = build_command("54.1.2.3", workdir / "bastion_key.pem", "ec2-user", "bob@db.internal")
    assert shlex.split(printed) == expected


def test_terminate_with_force_destroys_and_removes_key(workdir):
    key = workdir / "bastion_key.pem"
    key.write_text("KEY\n")
    with patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver") as driver_cls:
        assert cli.main(["terminate", "--force"]) == 0
    driver_cls.return_value.destroy.assert_called_once()
    assert not key.exists()


def test_terminate_declined_is_clean_exit():
    with patch("bastion_connect.cli.sys.stdin") as stdin, \
         patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver") as driver_cls, \
         patch("bastion_connect.cli.questionary.confirm") as confirm:
        stdin.isatty.return_value = True
        confirm.return_value.ask.return_value = False
        assert cli.main(["terminate"]) == 0
    driver_cls.return_value.destroy.assert_not_called()


def test_terminate_without_force_needs_a_terminal(capsys):
    with patch("bastion_connect.cli.sys.stdin") as stdin, \
         patch("bastion_connect.cli.check_state", return_value=RUNNING), \
         patch("bastion_connect.cli.TofuDriver") as driver_cls, \
         patch("bastion_connect.cli.questionary.confirm") as confirm:
        stdin.isatty.return_value = False
        assert cli.main(["terminate"]) == 1
    confirm.assert_not_called()
    driver_cls.return_value.destroy.assert_not_called()
    assert "--force" in capsys.readouterr().err


def test_terminate_when_absent_fails():
    with patch("bastion_connect.cli.TofuDriver") as driver_cls:
        driver_cls.return_value.outputs.return_value = {}
        assert cli.main(["terminate", "-y"]) == 1
    driver_cls.return_value.destroy.assert_not_called()


def test_status_never_fails_when_absent(capsys):
    with patch("bastion_connect.cli.TofuDriver") as driver_cls:
        driver_cls.return_value.outputs.return_value = {}
        assert cli.main(["status"]) == 0
    assert "absent" in capsys.readouterr().out


def test_unknown_command_exits_1():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["explode"])
    assert excinfo.value.code == 1


def test_prompts_fill_missing_ids():
    resolver = MagicMock()
    resolver.list_subnets.return_value = [
        {"id": "subnet-0priv0001", "name": "private-a", "vpc_id": "vpc-111", "az": "us-east-1a", "public": False},
        {"id": "subnet-0pub00001", "name": "public-a", "vpc_id": "vpc-111", "az": "us-east-1a", "public": True},
        {"id": "subnet-0other001", "name": "elsewhere", "vpc_id": "vpc-222", "az": "us-east-1b", "public": True},
    ]
    resolver.vpc_for_subnet.return_value = "vpc-111"
    resolver.list_security_groups.return_value = [{"id": "sg-0123456789", "name": "db"}]
    args = cli.build_parser().parse_args(["launch", "--private-subnet-id", "subnet-0priv0001"])

    with patch("bastion_connect.cli.questionary.select") as select:
        select.return_value.ask.side_effect = ["subnet-0pub00001", "sg-0123456789"]
        request = cli.prompt_launch_request(args, resolver)

    assert request.public_subnet_id == "subnet-0pub00001"
    assert request.security_group_id == "sg-0123456789"
    # only public subnets in the private subnet's VPC are offered
    choices = select.call_args_list[0].kwargs["choices"]
    assert [c.value for c in choices] == ["subnet-0pub00001"]


def test_prompt_cancel_is_validation_error():
    resolver = MagicMock()
    resolver.list_subnets.return_value = [
        {"id": "subnet-0priv0001", "name": "private-a", "vpc_id": "vpc-111", "az": "us-east-1a", "public": False},
    ]
    args = cli.build_parser().parse_args(["launch"])
    with patch("bastion_connect.cli.questionary.select") as select:
        select.return_value.ask.return_value = None
        with pytest.raises(cli.ValidationError):
            cli.prompt_launch_request(args, resolver)
