"""
Terraform State Backend
S3 bucket (versioned, encrypted) and DynamoDB lock table for remote state
"""
import pulumi
from config import get_config
from modules.state_backend import (
    create_state_backend_resources,
    get_backend_config,
    get_backend_configuration_commands,
    render_backend_tf_json,
)

config = get_config()

# Bucket and table names flow into the reusable submodule
backend = create_state_backend_resources(
    bucket_name=config.bucket_name,
    table_name=config.table_name,
    tags=config.common_tags,
    noncurrent_version_days=config.noncurrent_version_days
)

backend_config = get_backend_config(
    bucket_name=config.bucket_name,
    state_key=config.state_key,
    aws_region=config.aws_region,
    table_name=config.table_name,
    encrypt=config.encrypt
)

# Exports
pulumi.export("bucket_name", backend["bucket_id"])
pulumi.export("bucket_arn", backend["bucket_arn"])
pulumi.export("dynamodb_table_name", backend["table_name"])
pulumi.export("dynamodb_table_arn", backend["table_arn"])
pulumi.export("backend_config", backend_config)
pulumi.export("backend_tf_json", render_backend_tf_json(backend_config))
pulumi.export("backend_configuration_commands", get_backend_configuration_commands(backend_config))
