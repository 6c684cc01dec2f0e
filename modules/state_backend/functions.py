"""
State Backend Module Functions
Creates the S3 bucket and DynamoDB lock table behind a Terraform S3 backend
"""

import json

import pulumi
import pulumi_aws as aws
from typing import Dict, List

LOCK_HASH_KEY = "LockID"
SSE_ALGORITHM = "AES256"
BILLING_MODE = "PAY_PER_REQUEST"


def create_state_bucket(bucket_name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create S3 bucket for Terraform state storage

    Args:
        bucket_name: S3 bucket name
        tags: Additional tags

    Returns:
        Dict with bucket resource and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{bucket_name}-bucket",
        bucket=bucket_name,
        tags={
            **tags,
            "Name": bucket_name,
            "Purpose": "Terraform state storage",
            "Module": "state-backend"
        }
    )

    return {
        "bucket": bucket,
        "bucket_id": bucket.id,
        "bucket_arn": bucket.arn
    }


def configure_state_bucket(bucket_name: str,
                           bucket_id: 'pulumi.Output[str]',
                           noncurrent_version_days: int = 30) -> Dict[str, any]:
    """
    Configure versioning, encryption, public access and lifecycle on the state bucket

    Args:
        bucket_name: Bucket name, used as resource name prefix
        bucket_id: S3 bucket ID
        noncurrent_version_days: Days prior state versions are retained

    Returns:
        Dict with bucket configuration resources
    """
    # Prior state versions stay retrievable for manual recovery
    versioning = aws.s3.BucketVersioning(
        f"{bucket_name}-versioning",
        bucket=bucket_id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(
            status="Enabled"
        )
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{bucket_name}-encryption",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm=SSE_ALGORITHM
                ),
                bucket_key_enabled=True
            )
        ]
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{bucket_name}-pab",
        bucket=bucket_id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{bucket_name}-lifecycle",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketLifecycleConfigurationRuleArgs(
                id="state_lifecycle",
                status="Enabled",
                filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(
                    prefix=""
                ),
                noncurrent_version_expiration=aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs(
                    noncurrent_days=noncurrent_version_days
                ),
                abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                    days_after_initiation=1
                )
            )
        ],
        opts=pulumi.ResourceOptions(depends_on=[versioning])
    )

    return {
        "versioning": versioning,
        "encryption": encryption,
        "public_access_block": public_access_block,
        "lifecycle": lifecycle
    }


def create_lock_table(table_name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create DynamoDB table for state locking

    Args:
        table_name: DynamoDB table name
        tags: Additional tags

    Returns:
        Dict with table resource and outputs
    """
    tags = tags or {}

    table = aws.dynamodb.Table(
        f"{table_name}-table",
        name=table_name,
        billing_mode=BILLING_MODE,
        hash_key=LOCK_HASH_KEY,
        attributes=[
            aws.dynamodb.TableAttributeArgs(
                name=LOCK_HASH_KEY,
                type="S"
            )
        ],
        server_side_encryption=aws.dynamodb.TableServerSideEncryptionArgs(
            enabled=True
        ),
        tags={
            **tags,
            "Name": table_name,
            "Purpose": "Terraform state locking",
            "Module": "state-backend"
        }
    )

    return {
        "table": table,
        "table_id": table.id,
        "table_name": table.name,
        "table_arn": table.arn
    }


def get_backend_config(bucket_name: str,
                       state_key: str,
                       aws_region: str,
                       table_name: str,
                       encrypt: bool = True) -> Dict[str, str]:
    """Backend pointer for a Terraform root using this bucket and table"""
    return {
        "backend_type": "s3",
        "bucket": bucket_name,
        "key": state_key,
        "region": aws_region,
        "dynamodb_table": table_name,
        "encrypt": "true" if encrypt else "false"
    }


def render_backend_tf_json(backend_config: Dict[str, str]) -> str:
    """
    Render a backend pointer as a Terraform JSON configuration document

    Args:
        backend_config: Dict as returned by get_backend_config

    Returns:
        Contents for a backend.tf.json file
    """
    return json.dumps({
        "terraform": {
            "backend": {
                "s3": {
                    "bucket": backend_config["bucket"],
                    "key": backend_config["key"],
                    "region": backend_config["region"],
                    "dynamodb_table": backend_config["dynamodb_table"],
                    "encrypt": backend_config["encrypt"] == "true"
                }
            }
        }
    }, indent=2, sort_keys=True)


def get_backend_configuration_commands(backend_config: Dict[str, str]) -> List[str]:
    """
    Get commands to point a Terraform root at the backend

    Args:
        backend_config: Dict as returned by get_backend_config

    Returns:
        List of configuration commands
    """
    return [
        "# Initialize a Terraform root against the S3 backend:",
        "terraform init \\",
        f"  -backend-config=bucket={backend_config['bucket']} \\",
        f"  -backend-config=key={backend_config['key']} \\",
        f"  -backend-config=region={backend_config['region']} \\",
        f"  -backend-config=dynamodb_table={backend_config['dynamodb_table']} \\",
        f"  -backend-config=encrypt={backend_config['encrypt']}",
        "",
        "# Inspect or clear a stuck lock:",
        "python -m state_lock show-lock",
        "python -m state_lock force-unlock <LOCK_ID> --force"
    ]


def create_state_backend_resources(bucket_name: str,
                                   table_name: str,
                                   tags: Dict[str, str] = None,
                                   noncurrent_version_days: int = 30) -> Dict[str, any]:
    """
    Create the complete state backend infrastructure

    Args:
        bucket_name: S3 bucket name for the state object
        table_name: DynamoDB table name for lock records
        tags: Additional tags for all resources
        noncurrent_version_days: Days prior state versions are retained

    Returns:
        Dict with generated identifiers and resource references
    """
    tags = tags or {}

    pulumi.log.info(f"Setting up S3 bucket for state storage: {bucket_name}")
    bucket_result = create_state_bucket(bucket_name, tags)
    bucket_config_result = configure_state_bucket(
        bucket_name, bucket_result["bucket_id"], noncurrent_version_days
    )

    pulumi.log.info(f"Setting up DynamoDB table for state locking: {table_name}")
    table_result = create_lock_table(table_name, tags)

    return {
        "bucket_id": bucket_result["bucket_id"],
        "bucket_arn": bucket_result["bucket_arn"],
        "table_id": table_result["table_id"],
        "table_name": table_result["table_name"],
        "table_arn": table_result["table_arn"],
        # Keep references to resources for dependencies
        "_bucket": bucket_result["bucket"],
        "_table": table_result["table"],
        "_bucket_config": bucket_config_result
    }
