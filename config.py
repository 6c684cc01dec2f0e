"""
Configuration management for the Terraform state backend stack
"""

import pulumi
from typing import Dict

class Config:
    """Centralized configuration management for the state backend deployment"""

    def __init__(self):
        self.config = pulumi.Config()

        # AWS Configuration
        self.aws_region = pulumi.Config("aws").get("region") or "af-south-1"

        # Naming
        self.project_name = self.config.get("project_name") or "tfstate-backend"
        self.bucket_name = self.config.get("bucket_name") or f"{self.project_name}-tfstate-{self.aws_region}"
        self.table_name = self.config.get("table_name") or f"{self.project_name}-tfstate-lock"

        # Backend pointer
        self.state_key = self.config.get("state_key") or "terraform.tfstate"
        encrypt = self.config.get_bool("encrypt")
        self.encrypt = True if encrypt is None else encrypt

        # Retention of prior state versions
        self.noncurrent_version_days = self.config.get_int("noncurrent_version_days") or 30

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": self.project_name,
            "ManagedBy": "pulumi",
            "Purpose": "terraform-state-backend"
        }
        base_tags.update(self.additional_tags)
        return base_tags

def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
