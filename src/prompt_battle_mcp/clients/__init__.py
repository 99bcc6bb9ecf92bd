"""AWS Bedrock client module"""

from .bedrock import BedrockCompletionClient, classify_boto3_error

__all__ = ["BedrockCompletionClient", "classify_boto3_error"]
