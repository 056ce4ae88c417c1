import pytest
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import OperationFailure

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.service.exceptions import MirrorWriteFailedError
from fleet_compliance_service.infrastructure.database.mirror_store import MirrorStore, get_mirror_stores


@pytest.fixture
def mock_collection():
    collection = MagicMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[
        {"_id": "x", "id": "row-1", "car_id": "veh-1", "document_type": "mot_certificate", "status": "pending_review"},
    ])
    collection.find.return_value = cursor
    collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
    return collection

@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__.return_value = mock_collection
    return db

@pytest.fixture
def store():
    return MirrorStore("documents", "documents", "car_id")


def test_default_mirrors():
    mirrors = get_mirror_stores()
    assert [(m.name, m.collection_name, m.vehicle_key) for m in mirrors] == [
        ("documents", settings.DOCUMENTS_LEDGER_COLLECTION, "car_id"),
        ("vehicle_documents", settings.VEHICLE_DOCUMENTS_COLLECTION, "vehicle_id"),
    ]

async def test_list_rows_uses_mirror_vehicle_key(store, mock_db, mock_collection):
    rows = await store.list_document_rows_for_vehicle(mock_db, "veh-1")

    assert [row.id for row in rows] == ["row-1"]
    mock_collection.find.assert_called_once_with({"car_id": "veh-1"})

async def test_list_rows_failure(store, mock_db, mock_collection):
    mock_collection.find.side_effect = OperationFailure("denied")
    with pytest.raises(MirrorWriteFailedError) as exc_info:
        await store.list_document_rows_for_vehicle(mock_db, "veh-1")
    assert exc_info.value.row_id is None

async def test_update_row(store, mock_db, mock_collection):
    await store.update_document_row(mock_db, "row-1", {"status": "approved"})
    mock_collection.update_one.assert_awaited_once_with({"id": "row-1"}, {"$set": {"status": "approved"}})

async def test_update_missing_row(store, mock_db, mock_collection):
    mock_collection.update_one.return_value = MagicMock(matched_count=0)
    with pytest.raises(MirrorWriteFailedError) as exc_info:
        await store.update_document_row(mock_db, "row-404", {"status": "approved"})
    assert exc_info.value.row_id == "row-404"
    assert "row not found" in str(exc_info.value)
