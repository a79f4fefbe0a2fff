"""Provision, connect through, and tear down a temporary AWS bastion host."""

__version__ = "0.1.0"
