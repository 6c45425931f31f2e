import pytest

from live_mosaic.services.persistence import (
    SQLiteBlobStore,
    SQLiteMetadataStore,
    SQLitePersistenceService,
)


@pytest.fixture(scope="function")
def db_service(request, tmp_path):
    db_path = tmp_path / "db"
    db_path.mkdir()
    service = SQLitePersistenceService(str(db_path))
    service.connect()
    request.addfinalizer(service.disconnect)
    return service


@pytest.fixture(scope="function")
def metadata_store(db_service):
    return SQLiteMetadataStore(db_service)


@pytest.fixture(scope="function")
def blob_store(db_service):
    return SQLiteBlobStore(db_service)
