"""
Unit tests for the state backend Pulumi module
Tests the function-based approach for creating the bucket and lock table
"""

import json
import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.state_backend.functions import (
    create_state_backend_resources,
    get_backend_config,
    get_backend_configuration_commands,
    render_backend_tf_json,
)


def _mock_aws_resources(mock_aws):
    mock_bucket = Mock()
    mock_bucket.id = "test-bucket"
    mock_bucket.arn = "arn:aws:s3:::test-bucket"
    mock_aws.s3.Bucket.return_value = mock_bucket

    mock_table = Mock()
    mock_table.id = "test-table"
    mock_table.name = "test-table"
    mock_table.arn = "arn:aws:dynamodb:us-east-1:123456789012:table/test-table"
    mock_aws.dynamodb.Table.return_value = mock_table
    return mock_bucket, mock_table


class TestStateBackendFunctions(unittest.TestCase):
    """Test the state backend module functions"""

    def test_state_backend_function_structure(self):
        """Test that the state backend function returns expected identifiers"""
        with patch('modules.state_backend.functions.aws') as mock_aws, \
                patch('modules.state_backend.functions.pulumi'):
            _mock_aws_resources(mock_aws)

            result = create_state_backend_resources(
                bucket_name="test-bucket",
                table_name="test-table"
            )

            self.assertEqual(result["bucket_id"], "test-bucket")
            self.assertEqual(result["bucket_arn"], "arn:aws:s3:::test-bucket")
            self.assertEqual(result["table_id"], "test-table")
            self.assertEqual(result["table_name"], "test-table")
            self.assertIn("table_arn", result)
            self.assertIn("_bucket", result)
            self.assertIn("_table", result)
            self.assertEqual(
                set(result["_bucket_config"]),
                {"versioning", "encryption", "public_access_block", "lifecycle"}
            )

    def test_bucket_is_versioned_and_encrypted(self):
        """Test that the bucket gets versioning and AES256 encryption"""
        with patch('modules.state_backend.functions.aws') as mock_aws, \
                patch('modules.state_backend.functions.pulumi'):
            mock_bucket, _ = _mock_aws_resources(mock_aws)

            create_state_backend_resources(bucket_name="test-bucket", table_name="test-table")

            mock_aws.s3.Bucket.assert_called_once()
            self.assertEqual(mock_aws.s3.Bucket.call_args.kwargs["bucket"], "test-bucket")
            mock_aws.s3.BucketVersioningVersioningConfigurationArgs.assert_called_once_with(status="Enabled")
            self.assertEqual(mock_aws.s3.BucketVersioning.call_args.kwargs["bucket"], mock_bucket.id)
            (mock_aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs
             .assert_called_once_with(sse_algorithm="AES256"))
            public_access = mock_aws.s3.BucketPublicAccessBlock.call_args.kwargs
            self.assertTrue(public_access["block_public_acls"])
            self.assertTrue(public_access["restrict_public_buckets"])

    def test_lock_table_schema(self):
        """Test that the lock table is keyed by LockID and billed per request"""
        with patch('modules.state_backend.functions.aws') as mock_aws, \
                patch('modules.state_backend.functions.pulumi'):
            _mock_aws_resources(mock_aws)

            create_state_backend_resources(
                bucket_name="test-bucket",
                table_name="test-table",
                tags={"Team": "platform"}
            )

            table_kwargs = mock_aws.dynamodb.Table.call_args.kwargs
            self.assertEqual(table_kwargs["name"], "test-table")
            self.assertEqual(table_kwargs["hash_key"], "LockID")
            self.assertEqual(table_kwargs["billing_mode"], "PAY_PER_REQUEST")
            self.assertEqual(table_kwargs["tags"]["Team"], "platform")
            mock_aws.dynamodb.TableAttributeArgs.assert_called_once_with(name="LockID", type="S")

    def test_noncurrent_version_retention(self):
        """Test that prior state versions expire after the configured days"""
        with patch('modules.state_backend.functions.aws') as mock_aws, \
                patch('modules.state_backend.functions.pulumi'):
            _mock_aws_resources(mock_aws)

            create_state_backend_resources(
                bucket_name="test-bucket",
                table_name="test-table",
                noncurrent_version_days=90
            )

            (mock_aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs
             .assert_called_once_with(noncurrent_days=90))


class TestBackendConfig(unittest.TestCase):
    """Test the backend pointer helpers"""

    def setUp(self):
        self.backend_config = get_backend_config(
            bucket_name="test-bucket",
            state_key="network/terraform.tfstate",
            aws_region="us-east-1",
            table_name="test-table"
        )

    def test_backend_config_structure(self):
        self.assertEqual(self.backend_config, {
            "backend_type": "s3",
            "bucket": "test-bucket",
            "key": "network/terraform.tfstate",
            "region": "us-east-1",
            "dynamodb_table": "test-table",
            "encrypt": "true"
        })

    def test_backend_config_without_encryption(self):
        backend_config = get_backend_config("b", "k", "us-east-1", "t", encrypt=False)
        self.assertEqual(backend_config["encrypt"], "false")

    def test_render_backend_tf_json(self):
        document = json.loads(render_backend_tf_json(self.backend_config))
        s3 = document["terraform"]["backend"]["s3"]
        self.assertEqual(s3["bucket"], "test-bucket")
        self.assertEqual(s3["key"], "network/terraform.tfstate")
        self.assertEqual(s3["dynamodb_table"], "test-table")
        self.assertIs(s3["encrypt"], True)

    def test_configuration_commands(self):
        commands = get_backend_configuration_commands(self.backend_config)
        self.assertIn("  -backend-config=bucket=test-bucket \\", commands)
        self.assertIn("  -backend-config=dynamodb_table=test-table \\", commands)
        self.assertTrue(any("force-unlock" in command for command in commands))


if __name__ == "__main__":
    unittest.main(verbosity=2)
