"""Remote storage targets and the adapters that upload to them.

Every adapter exposes send(target, payload) and test_reachability(target),
both returning a bool. Network and auth problems are logged and reported as
False; only programming errors escape.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Union

import boto3
import oss2
import requests
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

REMOTE_FILE_NAME = 'daily-income-config.json'
REQUEST_TIMEOUT = 10


@dataclass(frozen=True)
class LocalTarget:
    provider: ClassVar[str] = 'local'


@dataclass(frozen=True)
class WebDAVTarget:
    provider: ClassVar[str] = 'webdav'
    endpoint: str
    username: str
    password: str


@dataclass(frozen=True)
class S3Target:
    provider: ClassVar[str] = 's3'
    endpoint: str
    bucket: str
    access_key: str
    secret_key: str
    region: str = ''


@dataclass(frozen=True)
class AliyunOSSTarget:
    provider: ClassVar[str] = 'aliyun-oss'
    endpoint: str
    bucket: str
    access_key: str
    secret_key: str


SyncTarget = Union[LocalTarget, WebDAVTarget, S3Target, AliyunOSSTarget]


def build_target(provider: str, fields: Dict[str, Any]) -> Optional[SyncTarget]:
    """Build a target from merged plain and secret fields.

    Returns None when a required field is missing or the provider is unknown.
    """
    def get(name):
        return str(fields.get(name) or '').strip()

    if provider == 'local':
        return LocalTarget()

    if provider == 'webdav':
        endpoint, username, password = get('endpoint'), get('username'), get('password')
        if not (endpoint and username and password):
            return None
        return WebDAVTarget(endpoint=endpoint, username=username, password=password)

    if provider in ('s3', 'aliyun-oss'):
        endpoint, bucket = get('endpoint'), get('bucket')
        access_key, secret_key = get('accessKey'), get('secretKey')
        if not (endpoint and bucket and access_key and secret_key):
            return None
        if provider == 's3':
            return S3Target(endpoint=endpoint, bucket=bucket, access_key=access_key,
                            secret_key=secret_key, region=get('region'))
        return AliyunOSSTarget(endpoint=endpoint, bucket=bucket,
                               access_key=access_key, secret_key=secret_key)

    logger.warning("Unknown sync provider: %s", provider)
    return None


def _encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, indent=2).encode('utf-8')


class WebDAVAdapter:
    """PUT the payload as a JSON file under the WebDAV endpoint."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def file_url(self, target: WebDAVTarget) -> str:
        return target.endpoint.rstrip('/') + '/' + REMOTE_FILE_NAME

    def send(self, target: WebDAVTarget, payload: Dict[str, Any]) -> bool:
        try:
            response = self.session.put(
                self.file_url(target),
                data=_encode(payload),
                auth=(target.username, target.password),
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("WebDAV upload failed: %s", e)
            return False
        if not response.ok:
            logger.warning("WebDAV upload rejected: HTTP %s", response.status_code)
        return response.ok

    def test_reachability(self, target: WebDAVTarget) -> bool:
        try:
            response = self.session.options(
                target.endpoint,
                auth=(target.username, target.password),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("WebDAV connection test failed: %s", e)
            return False
        return response.ok


class S3Adapter:
    """Upload to an S3-compatible bucket with boto3."""

    def __init__(self, client_factory=boto3.client, timeout: float = REQUEST_TIMEOUT):
        self.client_factory = client_factory
        self.timeout = timeout

    def _client(self, target: S3Target):
        return self.client_factory(
            's3',
            endpoint_url=target.endpoint,
            aws_access_key_id=target.access_key,
            aws_secret_access_key=target.secret_key,
            region_name=target.region or None,
            config=BotoConfig(
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                retries={'max_attempts': 1},
            ),
        )

    def send(self, target: S3Target, payload: Dict[str, Any]) -> bool:
        try:
            self._client(target).put_object(
                Bucket=target.bucket,
                Key=REMOTE_FILE_NAME,
                Body=_encode(payload),
                ContentType='application/json',
            )
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 upload failed: %s", e)
            return False

    def test_reachability(self, target: S3Target) -> bool:
        try:
            self._client(target).head_bucket(Bucket=target.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 connection test failed: %s", e)
            return False


class AliyunOSSAdapter:
    """Upload to an Aliyun OSS bucket with oss2."""

    def __init__(self, bucket_factory=oss2.Bucket, timeout: float = REQUEST_TIMEOUT):
        self.bucket_factory = bucket_factory
        self.timeout = timeout

    def _bucket(self, target: AliyunOSSTarget):
        auth = oss2.Auth(target.access_key, target.secret_key)
        return self.bucket_factory(auth, target.endpoint, target.bucket,
                                   connect_timeout=self.timeout)

    def send(self, target: AliyunOSSTarget, payload: Dict[str, Any]) -> bool:
        try:
            result = self._bucket(target).put_object(
                REMOTE_FILE_NAME, _encode(payload),
                headers={'Content-Type': 'application/json'},
            )
        except oss2.exceptions.OssError as e:
            logger.warning("OSS upload failed: %s", e)
            return False
        return 200 <= result.status < 300

    def test_reachability(self, target: AliyunOSSTarget) -> bool:
        try:
            self._bucket(target).get_bucket_info()
            return True
        except oss2.exceptions.OssError as e:
            logger.warning("OSS connection test failed: %s", e)
            return False


def default_adapters() -> Dict[str, Any]:
    """One adapter per remote provider."""
    return {
        WebDAVTarget.provider: WebDAVAdapter(),
        S3Target.provider: S3Adapter(),
        AliyunOSSTarget.provider: AliyunOSSAdapter(),
    }
