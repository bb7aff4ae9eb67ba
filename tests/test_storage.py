import io

import pytest
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from callnotes.errors import StorageError
from callnotes.services.storage import LocalAudioStore, S3AudioStore, get_audio_store, new_audio_key


def test_local_store_round_trip(tmp_path):
    store = LocalAudioStore(str(tmp_path))
    key = store.store(b'audio-bytes', filename='../../clip.M4A', mime_type='audio/x-m4a')

    assert key.endswith('.m4a')
    assert '/' not in key
    assert store.exists(key)
    assert store.read_bytes(key) == b'audio-bytes'
    assert store.resolve(key) == str(tmp_path / key)

    store.delete(key)
    assert not store.exists(key)
    # deleting twice is fine
    store.delete(key)
    store.delete(None)


def test_local_store_rejects_keys_outside_root(tmp_path):
    store = LocalAudioStore(str(tmp_path / 'audio'))
    with pytest.raises(StorageError):
        store.read_bytes('../secret.txt')


def test_missing_blob_read_is_a_storage_error(tmp_path):
    store = LocalAudioStore(str(tmp_path))
    with pytest.raises(StorageError):
        store.read_bytes('nope.mp3')


def test_key_extension_falls_back_to_mime_type():
    assert new_audio_key(mime_type='audio/mpeg').endswith('.mp3')
    assert '.' not in new_audio_key()


def test_backend_selection(tmp_path):
    store = get_audio_store({'STORAGE_BACKEND': 'local', 'LOCAL_STORAGE_DIR': str(tmp_path)})
    assert isinstance(store, LocalAudioStore)
    s3 = get_audio_store({'STORAGE_BACKEND': 's3', 'S3_BUCKET': 'calls', 'S3_REGION': 'us-east-1',
                          'S3_ACCESS_KEY': 'k', 'S3_SECRET_KEY': 's'})
    assert isinstance(s3, S3AudioStore)


@pytest.fixture
def s3_store():
    store = S3AudioStore('calls', region='us-east-1', access_key='k', secret_key='s')
    with Stubber(store.client) as stubber:
        yield store, stubber


def test_s3_store_put_read_delete(s3_store):
    store, stubber = s3_store
    stubber.add_response('put_object', {}, {'Bucket': 'calls', 'Key': ANY, 'Body': b'abc', 'ContentType': 'audio/mpeg'})
    stubber.add_response('get_object', {'Body': StreamingBody(io.BytesIO(b'abc'), 3)}, {'Bucket': 'calls', 'Key': ANY})
    stubber.add_response('delete_object', {}, {'Bucket': 'calls', 'Key': ANY})

    key = store.store(b'abc', mime_type='audio/mpeg')
    assert store.resolve(key) == f's3://calls/audio/{key}'
    assert store.read_bytes(key) == b'abc'
    store.delete(key)
    stubber.assert_no_pending_responses()


def test_s3_missing_object_does_not_exist(s3_store):
    store, stubber = s3_store
    stubber.add_client_error('head_object', service_error_code='404', http_status_code=404)
    assert store.exists('gone.mp3') is False


def test_s3_failures_raise_storage_error(s3_store):
    store, stubber = s3_store
    stubber.add_client_error('put_object', service_error_code='AccessDenied', http_status_code=403)
    with pytest.raises(StorageError):
        store.store(b'abc')
