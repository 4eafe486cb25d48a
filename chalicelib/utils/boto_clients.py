import os
import boto3

from botocore.config import Config

main_boto_region = os.environ.get('MAIN_BOTO_REGION', 'eu-central-1')
aws_config_ddb = Config(retries={'max_attempts': 30}, region_name=os.environ.get('AWS_REGION', 'eu-central-1'))

# Simple Email Service Client.
# SES is available only in us-east-1 region, so region_name is hardcoded.
ses_client = boto3.client('ses', config=Config(retries={'max_attempts': 30}, region_name='us-east-1'))
