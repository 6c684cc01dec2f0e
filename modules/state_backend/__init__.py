"""
State Backend Module
S3 bucket and DynamoDB lock table for a Terraform remote-state backend
"""

from .functions import (
    create_state_backend_resources,
    get_backend_config,
    get_backend_configuration_commands,
    render_backend_tf_json,
)

__all__ = [
    "create_state_backend_resources",
    "get_backend_config",
    "get_backend_configuration_commands",
    "render_backend_tf_json"
]
