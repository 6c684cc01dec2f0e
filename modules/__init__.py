"""
Pulumi modules for the Terraform state backend
Declares the bucket and lock table that back a Terraform S3 backend
"""

from .state_backend import create_state_backend_resources

__all__ = [
    "create_state_backend_resources"
]
