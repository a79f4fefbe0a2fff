"""
Launch provisioning pipeline.

Populates the variable registry in a fixed order:

  1. reset the registry
  2. caller-supplied network ids (private subnet, public subnet, security group)
  3. network ACL id of each subnet
  4. VPC id, which must be the same for both subnets
  5. ACL rule numbers
  6. caller's public IP
  7. engine settings (region, instance type, ssh user)

Network ACLs are stateless, so each allow rule needs a mirrored rule in the
opposite direction on the ephemeral port range. On the public ACL:

  ingress[0]  SSH in from the operator            (tcp 22)
  ingress[1]  replies to the bastion's ssh out    (ephemeral, from private subnet)
  egress[0]   replies to the operator             (ephemeral, to operator)
  egress[1]   bastion ssh out to private subnet   (tcp 22)

On the private ACL one ingress (SSH in from the public subnet) and one egress
(ephemeral replies back to it). When both subnets share one ACL the six
numbers come from one scan per direction so they cannot collide.
"""

import ipaddress
from dataclasses import dataclass

import requests

from . import slots
from .config import IP_LOOKUP_TIMEOUT, Settings
from .console import detail, step
from .errors import ExternalCallFailure, TopologyMismatch
from .registry import VariableRegistry
from .topology import TopologyResolver

# Registry parameter names, shared with templates/main.tf
PRIVATE_SUBNET_ID = "private_subnet_id"
PUBLIC_SUBNET_ID = "public_subnet_id"
SECURITY_GROUP_ID = "security_group_id"
PRIVATE_ACL_ID = "private_acl_id"
PUBLIC_ACL_ID = "public_acl_id"
VPC_ID = "vpc_id"
PUBLIC_SSH_INGRESS_RULE = "public_acl_ssh_ingress_rule"
PUBLIC_EPHEMERAL_INGRESS_RULE = "public_acl_ephemeral_ingress_rule"
PUBLIC_EPHEMERAL_EGRESS_RULE = "public_acl_ephemeral_egress_rule"
PUBLIC_SSH_EGRESS_RULE = "public_acl_ssh_egress_rule"
PRIVATE_SSH_INGRESS_RULE = "private_acl_ssh_ingress_rule"
PRIVATE_EPHEMERAL_EGRESS_RULE = "private_acl_ephemeral_egress_rule"
CLIENT_IP = "client_ip"
REGION = "region"
INSTANCE_TYPE = "instance_type"
SSH_USER = "ssh_user"


@dataclass(frozen=True)
class LaunchRequest:
    private_subnet_id: str
    public_subnet_id: str
    security_group_id: str


def discover_public_ip(url: str, timeout: int = IP_LOOKUP_TIMEOUT) -> str:
    """Ask an echo-my-IP service for the caller's public IPv4 address."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ExternalCallFailure(f"Public IP lookup via {url} failed: {e}") from e

    text = response.text.strip()
    try:
        return str(ipaddress.IPv4Address(text))
    except ipaddress.AddressValueError as e:
        raise ExternalCallFailure(f"{url} returned '{text}', not an IPv4 address") from e


class ProvisioningPipeline:
    """Computes every engine parameter for one launch."""

    def __init__(self, registry: VariableRegistry, resolver: TopologyResolver, settings: Settings):
        self.registry = registry
        self.resolver = resolver
        self.settings = settings

    def run(self, request: LaunchRequest) -> VariableRegistry:
        self.registry.clear()

        self.registry.set_all(
            [PRIVATE_SUBNET_ID, PUBLIC_SUBNET_ID, SECURITY_GROUP_ID],
            [request.private_subnet_id, request.public_subnet_id, request.security_group_id],
        )

        private_acl = self.resolver.acl_for_subnet(request.private_subnet_id)
        public_acl = self.resolver.acl_for_subnet(request.public_subnet_id)
        self.registry.set_all([PRIVATE_ACL_ID, PUBLIC_ACL_ID], [private_acl, public_acl])
        detail(f"private ACL {private_acl}, public ACL {public_acl}")

        vpc_id = self._shared_vpc(request)
        self.registry.set_all([VPC_ID], [vpc_id])
        step(f"VPC: [cyan]{vpc_id}[/cyan]")

        self._allocate_rules(public_acl, private_acl)

        client_ip = discover_public_ip(self.settings.ip_url)
        self.registry.set_all([CLIENT_IP], [client_ip])
        step(f"Public IP: [cyan]{client_ip}[/cyan]")

        self.registry.set_all(
            [REGION, INSTANCE_TYPE, SSH_USER],
            [self.settings.region or '', self.settings.instance_type, self.settings.ssh_user],
        )
        return self.registry

    def _shared_vpc(self, request: LaunchRequest) -> str:
        private_vpc = self.resolver.vpc_for_subnet(request.private_subnet_id)
        public_vpc = self.resolver.vpc_for_subnet(request.public_subnet_id)
        if private_vpc != public_vpc:
            raise TopologyMismatch(
                f"Private subnet {request.private_subnet_id} is in {private_vpc} but "
                f"public subnet {request.public_subnet_id} is in {public_vpc}"
            )
        return private_vpc

    def _allocate_rules(self, public_acl: str, private_acl: str):
        if public_acl == private_acl:
            # Both subnets share one ACL: take all numbers from a single scan
            ingress = slots.allocate(self.resolver.existing_rule_numbers(public_acl, egress=False), 3)
            egress = slots.allocate(self.resolver.existing_rule_numbers(public_acl, egress=True), 3)
            public_in, private_in = ingress[:2], ingress[2:]
            public_out, private_out = egress[:2], egress[2:]
        else:
            public_in = slots.allocate(self.resolver.existing_rule_numbers(public_acl, egress=False), 2)
            public_out = slots.allocate(self.resolver.existing_rule_numbers(public_acl, egress=True), 2)
            private_in = slots.allocate(self.resolver.existing_rule_numbers(private_acl, egress=False), 1)
            private_out = slots.allocate(self.resolver.existing_rule_numbers(private_acl, egress=True), 1)

        self.registry.set_all(
            [
                PUBLIC_SSH_INGRESS_RULE,
                PUBLIC_EPHEMERAL_INGRESS_RULE,
                PUBLIC_EPHEMERAL_EGRESS_RULE,
                PUBLIC_SSH_EGRESS_RULE,
                PRIVATE_SSH_INGRESS_RULE,
                PRIVATE_EPHEMERAL_EGRESS_RULE,
            ],
            [
                public_in[0],
                public_in[1],
                public_out[0],
                public_out[1],
                private_in[0],
                private_out[0],
            ],
        )
        step(f"ACL rule numbers: public in {public_in} out {public_out}, "
             f"private in {private_in} out {private_out}")
