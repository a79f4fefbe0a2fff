"""
Read-only lookups against EC2: subnet -> VPC, subnet -> network ACL, and the
rule numbers already used in an ACL.

Any provider error aborts the run; later steps depend on these facts.
"""

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from .errors import ExternalCallFailure, ValidationError


def get_aws_session(profile: str | None = None, region: str | None = None) -> boto3.Session:
    try:
        return boto3.Session(profile_name=profile, region_name=region)
    except ProfileNotFound as e:
        raise ValidationError(f"AWS profile '{profile}' not found") from e


def _tag_name(resource: dict) -> str:
    return next((t['Value'] for t in resource.get('Tags', []) if t['Key'] == 'Name'), 'unnamed')


class TopologyResolver:
    """Thin wrapper over the EC2 describe calls the pipeline needs."""

    def __init__(self, session: boto3.Session):
        self.session = session
        self._ec2 = None

    @property
    def ec2(self):
        if self._ec2 is None:
            self._ec2 = self.session.client('ec2')
        return self._ec2

    def _call(self, operation: str, **kwargs) -> dict:
        try:
            return getattr(self.ec2, operation)(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ExternalCallFailure(f"ec2 {operation} failed: {e}") from e

    def vpc_for_subnet(self, subnet_id: str) -> str:
        response = self._call('describe_subnets', SubnetIds=[subnet_id])
        subnets = response.get('Subnets', [])
        if not subnets:
            raise ExternalCallFailure(f"Subnet {subnet_id} not found")
        return subnets[0]['VpcId']

    def acl_for_subnet(self, subnet_id: str) -> str:
        response = self._call(
            'describe_network_acls',
            Filters=[{'Name': 'association.subnet-id', 'Values': [subnet_id]}],
        )
        acls = response.get('NetworkAcls', [])
        if not acls:
            raise ExternalCallFailure(f"No network ACL associated with {subnet_id}")
        return acls[0]['NetworkAclId']

    def existing_rule_numbers(self, acl_id: str, egress: bool) -> set[int]:
        response = self._call('describe_network_acls', NetworkAclIds=[acl_id])
        acls = response.get('NetworkAcls', [])
        if not acls:
            raise ExternalCallFailure(f"Network ACL {acl_id} not found")
        return {
            int(entry['RuleNumber'])
            for entry in acls[0].get('Entries', [])
            if bool(entry.get('Egress')) == egress
        }

    # Used by interactive launch prompts

    def list_subnets(self) -> list[dict]:
        response = self._call('describe_subnets')
        return [{
            'id': s['SubnetId'],
            'name': _tag_name(s),
            'vpc_id': s['VpcId'],
            'az': s['AvailabilityZone'],
            'public': s.get('MapPublicIpOnLaunch', False),
        } for s in response.get('Subnets', [])]

    def list_security_groups(self, vpc_id: str) -> list[dict]:
        response = self._call(
            'describe_security_groups',
            Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}],
        )
        return [{
            'id': g['GroupId'],
            'name': g.get('GroupName', 'unnamed'),
        } for g in response.get('SecurityGroups', [])]
