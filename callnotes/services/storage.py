import os
import mimetypes
from uuid import uuid4
from werkzeug.utils import secure_filename
from flask import current_app
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageError


def _extension_for(filename=None, mime_type=None):
    if filename:
        safe = secure_filename(filename)
        _, ext = os.path.splitext(safe)
        if ext:
            return ext.lower()
    if mime_type:
        guessed = mimetypes.guess_extension(mime_type.split(';')[0].strip())
        if guessed:
            return guessed
    return ''


def new_audio_key(filename=None, mime_type=None):
    return f"{uuid4()}{_extension_for(filename, mime_type)}"


class LocalAudioStore:
    """Audio blobs as files under one directory; keys are file names."""

    def __init__(self, root):
        self.root = os.path.abspath(root)
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise StorageError('Failed to initialize audio storage directory', cause=e)

    def _path(self, key):
        # keys are generated by store(); refuse anything that escapes the root
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.dirname(path) != self.root:
            raise StorageError('Invalid audio key', key=key)
        return path

    def store(self, audio_bytes, filename=None, mime_type=None):
        key = new_audio_key(filename, mime_type)
        path = self._path(key)
        try:
            with open(path, 'wb') as f:
                f.write(audio_bytes)
        except OSError as e:
            raise StorageError('Unable to store uploaded audio', key=key, cause=e)
        return key

    def resolve(self, key):
        return self._path(key)

    def exists(self, key):
        if not key:
            return False
        return os.path.isfile(self._path(key))

    def read_bytes(self, key):
        try:
            with open(self._path(key), 'rb') as f:
                return f.read()
        except OSError as e:
            raise StorageError('Unable to read stored audio', key=key, cause=e)

    def delete(self, key):
        if not key:
            return
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError('Unable to delete stored audio', key=key, cause=e)


class S3AudioStore:
    def __init__(self, bucket, endpoint=None, region=None, access_key=None, secret_key=None, prefix='audio'):
        # build boto3 client kwargs flexibly: endpoint_url may be empty in AWS-managed S3
        s3_kwargs = {}
        if endpoint:
            s3_kwargs['endpoint_url'] = endpoint
        if region:
            s3_kwargs['region_name'] = region
        s3_config = Config(signature_version='s3v4', s3={'addressing_style': 'virtual'})
        self.client = boto3.client(
            's3',
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=s3_config,
            **s3_kwargs,
        )
        self.bucket = bucket
        self.prefix = prefix.strip('/')

    def _object_key(self, key):
        return f"{self.prefix}/{key}" if self.prefix else key

    def store(self, audio_bytes, filename=None, mime_type=None):
        key = new_audio_key(filename, mime_type)
        extra = {'ContentType': mime_type} if mime_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._object_key(key), Body=audio_bytes, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError('Unable to store uploaded audio', key=key, cause=e)
        return key

    def resolve(self, key):
        return f"s3://{self.bucket}/{self._object_key(key)}"

    def exists(self, key):
        if not key:
            return False
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._object_key(key))
            return True
        except ClientError as e:
            status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
            if status == 404 or e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageError('Unable to inspect stored audio', key=key, cause=e)
        except BotoCoreError as e:
            raise StorageError('Unable to inspect stored audio', key=key, cause=e)

    def read_bytes(self, key):
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._object_key(key))
            return obj['Body'].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError('Unable to read stored audio', key=key, cause=e)

    def delete(self, key):
        if not key:
            return
        # S3 DeleteObject succeeds for missing keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError('Unable to delete stored audio', key=key, cause=e)


def get_audio_store(config=None):
    config = config if config is not None else current_app.config
    backend = config.get('STORAGE_BACKEND', 'local')
    if backend == 's3':
        return S3AudioStore(
            bucket=config.get('S3_BUCKET'),
            endpoint=config.get('S3_ENDPOINT'),
            region=config.get('S3_REGION'),
            access_key=config.get('S3_ACCESS_KEY'),
            secret_key=config.get('S3_SECRET_KEY'),
        )
    return LocalAudioStore(config.get('LOCAL_STORAGE_DIR', './storage/audio'))
