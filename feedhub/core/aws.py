from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.config import Config

from .settings import S


@lru_cache(maxsize=1)
def aws_session() -> boto3.session.Session:
    return boto3.session.Session(region_name=S.aws_region or "us-east-1")


def ddb_resource():
    kwargs = {}
    if S.ddb_endpoint_url:
        kwargs["endpoint_url"] = S.ddb_endpoint_url
    return aws_session().resource("dynamodb", **kwargs)


@lru_cache(maxsize=1)
def s3_client():
    kwargs = {"config": Config(signature_version="s3v4")}
    if S.s3_endpoint_url:
        kwargs["endpoint_url"] = S.s3_endpoint_url
    return aws_session().client("s3", **kwargs)
