"""
Tests for the local and GCS artifact sources.

The GCS source is exercised against a mocked storage client so no
credentials or network access are needed.
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest
from google.api_core.exceptions import Forbidden, NotFound, ServiceUnavailable
from google.auth.exceptions import DefaultCredentialsError

from integrations.gcs_source import GCSArtifactSource
from services.artifact_source import LocalArtifactSource, StorageError
from services.technical_analysis import ArtifactQuery, TechnicalAnalysisService


# ============================================================================
# Local source
# ============================================================================

@pytest.fixture
def artifact_dir(tmp_path):
    """Directory tree laid out like the bucket."""
    day = tmp_path / "daily" / "2024-05-01"
    (day / "ABC").mkdir(parents=True)
    (day / "ABC" / "signals_0900.json").write_text(json.dumps({"run": "0900"}), encoding="utf-8")
    (day / "ABC" / "signals_1500.json").write_text(json.dumps({"run": "1500"}), encoding="utf-8")
    (day / "ABC" / "gemini_analysis_0900.json").write_text(json.dumps({"summary": "ok"}), encoding="utf-8")
    return tmp_path


def test_local_list_keys_uses_posix_relative_keys(artifact_dir):
    source = LocalArtifactSource(str(artifact_dir))
    keys = source.list_keys("daily/2024-05-01/ABC/")
    assert sorted(keys) == [
        "daily/2024-05-01/ABC/gemini_analysis_0900.json",
        "daily/2024-05-01/ABC/signals_0900.json",
        "daily/2024-05-01/ABC/signals_1500.json",
    ]


def test_local_list_keys_has_string_prefix_semantics(artifact_dir):
    """Same as object storage: a prefix without trailing slash also matches longer symbols."""
    longer = artifact_dir / "daily" / "2024-05-01" / "ABCD"
    longer.mkdir()
    (longer / "signals_2300.json").write_text(json.dumps({"run": "other"}), encoding="utf-8")
    source = LocalArtifactSource(str(artifact_dir))

    keys = source.list_keys("daily/2024-05-01/ABC")
    assert "daily/2024-05-01/ABCD/signals_2300.json" in keys
    assert len(keys) == 4

    # The longer symbol's key sorts last, so it is the one served for ABC
    result = TechnicalAnalysisService(source).fetch(ArtifactQuery(symbol="ABC", date="2024-05-01"))
    assert result.technical_data == {"run": "other"}


def test_local_list_keys_walks_only_the_prefix_directory(artifact_dir, monkeypatch):
    other_day = artifact_dir / "daily" / "2024-04-30" / "ABC"
    other_day.mkdir(parents=True)
    (other_day / "signals_0900.json").write_text("{}", encoding="utf-8")
    walked = []
    real_rglob = Path.rglob

    def recording_rglob(self, *args, **kwargs):
        walked.append(self)
        return real_rglob(self, *args, **kwargs)

    monkeypatch.setattr(Path, "rglob", recording_rglob)
    source = LocalArtifactSource(str(artifact_dir))

    keys = source.list_keys("daily/2024-05-01/AB")

    assert walked == [(artifact_dir / "daily" / "2024-05-01").resolve()]
    assert len(keys) == 3
    assert all(key.startswith("daily/2024-05-01/ABC/") for key in keys)


def test_local_list_keys_rejects_prefix_outside_root(artifact_dir):
    source = LocalArtifactSource(str(artifact_dir))
    with pytest.raises(StorageError, match="escapes"):
        source.list_keys("../../etc/passwd")


def test_local_list_keys_unknown_prefix_is_empty(artifact_dir):
    source = LocalArtifactSource(str(artifact_dir))
    assert source.list_keys("daily/1999-01-01/ABC") == []


def test_local_list_keys_missing_root_raises(tmp_path):
    source = LocalArtifactSource(str(tmp_path / "missing"))
    with pytest.raises(StorageError):
        source.list_keys("daily/")


def test_local_fetch_reads_bytes(artifact_dir):
    source = LocalArtifactSource(str(artifact_dir))
    raw = source.fetch("daily/2024-05-01/ABC/signals_1500.json")
    assert json.loads(raw) == {"run": "1500"}


def test_local_fetch_missing_file_raises_storage_error(artifact_dir):
    source = LocalArtifactSource(str(artifact_dir))
    with pytest.raises(StorageError):
        source.fetch("daily/2024-05-01/ABC/signals_0000.json")


def test_local_fetch_rejects_keys_outside_root(artifact_dir, tmp_path_factory):
    outside = tmp_path_factory.mktemp("outside") / "secret.json"
    outside.write_text("{}", encoding="utf-8")
    source = LocalArtifactSource(str(artifact_dir))
    with pytest.raises(StorageError, match="escapes"):
        source.fetch(f"../{outside.parent.name}/secret.json")


def test_local_health_check(artifact_dir, tmp_path):
    assert LocalArtifactSource(str(artifact_dir)).health_check()["status"] == "up"
    down = LocalArtifactSource(str(tmp_path / "missing")).health_check()
    assert down["status"] == "down"
    assert down["source"] == "local"


def test_local_source_end_to_end(artifact_dir):
    service = TechnicalAnalysisService(LocalArtifactSource(str(artifact_dir)))
    result = service.fetch(ArtifactQuery(symbol="ABC", date="2024-05-01"))
    assert result.technical_data == {"run": "1500"}
    assert result.gemini_analysis == {"summary": "ok"}


# ============================================================================
# GCS source
# ============================================================================

def _blob(name):
    blob = Mock()
    blob.name = name
    return blob


@pytest.fixture
def mock_client():
    """Mock google.cloud.storage.Client."""
    return MagicMock()


@pytest.fixture
def gcs_source(mock_client):
    return GCSArtifactSource(bucket_name="ttb-test-bucket", timeout=5.0, client=mock_client)


def test_gcs_requires_bucket_name():
    with pytest.raises(ValueError):
        GCSArtifactSource(bucket_name="  ")


def test_gcs_list_keys(gcs_source, mock_client):
    mock_client.list_blobs.return_value = iter([
        _blob("daily/2024-05-01/ABC/signals_0900.json"),
        _blob("daily/2024-05-01/ABC/gemini_analysis_0900.json"),
    ])

    keys = gcs_source.list_keys("daily/2024-05-01/ABC")

    assert keys == [
        "daily/2024-05-01/ABC/signals_0900.json",
        "daily/2024-05-01/ABC/gemini_analysis_0900.json",
    ]
    mock_client.list_blobs.assert_called_once_with(
        "ttb-test-bucket",
        prefix="daily/2024-05-01/ABC",
        timeout=5.0,
    )


def test_gcs_fetch(gcs_source, mock_client):
    blob = mock_client.bucket.return_value.blob.return_value
    blob.download_as_bytes.return_value = b'{"run": "0900"}'

    raw = gcs_source.fetch("daily/2024-05-01/ABC/signals_0900.json")

    assert raw == b'{"run": "0900"}'
    mock_client.bucket.assert_called_once_with("ttb-test-bucket")
    mock_client.bucket.return_value.blob.assert_called_once_with("daily/2024-05-01/ABC/signals_0900.json")
    blob.download_as_bytes.assert_called_once_with(timeout=5.0)


@pytest.mark.parametrize("error", [
    Forbidden("no access"),
    ServiceUnavailable("backend unavailable"),
    ConnectionError("connection reset"),
])
def test_gcs_list_errors_become_storage_errors(gcs_source, mock_client, error):
    mock_client.list_blobs.side_effect = error
    with pytest.raises(StorageError):
        gcs_source.list_keys("daily/2024-05-01/ABC")


def test_gcs_fetch_deleted_object_becomes_storage_error(gcs_source, mock_client):
    blob = mock_client.bucket.return_value.blob.return_value
    blob.download_as_bytes.side_effect = NotFound("object deleted")
    with pytest.raises(StorageError, match="gs://ttb-test-bucket/"):
        gcs_source.fetch("daily/2024-05-01/ABC/signals_0900.json")


def test_gcs_client_is_built_lazily_once():
    source = GCSArtifactSource(bucket_name="ttb-test-bucket", project="ttb-project")
    with patch("integrations.gcs_source.storage.Client") as client_cls:
        client_cls.return_value.list_blobs.return_value = iter([])
        source.list_keys("daily/")
        source.list_keys("daily/")
    client_cls.assert_called_once_with(project="ttb-project")


def test_gcs_client_from_service_account_file():
    source = GCSArtifactSource(bucket_name="ttb-test-bucket", credentials_file="/secrets/sa.json")
    with patch("integrations.gcs_source.storage.Client") as client_cls:
        client_cls.from_service_account_json.return_value.list_blobs.return_value = iter([])
        source.list_keys("daily/")
    client_cls.from_service_account_json.assert_called_once_with("/secrets/sa.json", project=None)
    client_cls.assert_not_called()


def test_gcs_missing_credentials_become_storage_error():
    source = GCSArtifactSource(bucket_name="ttb-test-bucket")
    with patch("integrations.gcs_source.storage.Client", side_effect=DefaultCredentialsError("no creds")):
        with pytest.raises(StorageError, match="Failed to create GCS client"):
            source.list_keys("daily/")


def test_gcs_health_check(gcs_source):
    health = gcs_source.health_check()
    assert health == {"status": "up", "source": "gcs", "bucket": "ttb-test-bucket", "error": None}

    broken = GCSArtifactSource(bucket_name="ttb-test-bucket")
    with patch("integrations.gcs_source.storage.Client", side_effect=DefaultCredentialsError("no creds")):
        health = broken.health_check()
    assert health["status"] == "down"
    assert "no creds" in health["error"]
