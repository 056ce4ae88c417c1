import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from fleet_compliance_service.app.main import startup_event, shutdown_event, app


@patch('fleet_compliance_service.app.main.PymongoInstrumentor')
@patch('fleet_compliance_service.app.main.connect_to_mongo', new_callable=AsyncMock)
async def test_startup_event_success(mock_connect: AsyncMock, mock_pymongo_instrumentor: MagicMock):
    await startup_event()

    mock_connect.assert_awaited_once()
    mock_pymongo_instrumentor.return_value.instrument.assert_called_once()


@patch('fleet_compliance_service.app.main.PymongoInstrumentor')
@patch('fleet_compliance_service.app.main.connect_to_mongo', new_callable=AsyncMock)
@patch('fleet_compliance_service.app.main.logger')
async def test_startup_event_db_failure_is_logged(mock_logger, mock_connect: AsyncMock, mock_pymongo_instrumentor: MagicMock):
    mock_connect.side_effect = ConnectionError("mongo down")

    await startup_event()

    mock_logger.error.assert_called_once()
    mock_pymongo_instrumentor.return_value.instrument.assert_not_called()


@patch('fleet_compliance_service.app.main.close_mongo_connection')
async def test_shutdown_event(mock_close: MagicMock):
    await shutdown_event()
    mock_close.assert_called_once()


def test_routes_registered():
    assert app.url_path_for("health_check") == "/health"
    assert app.url_path_for("approve_vehicle_api", vehicle_id="v1") == "/api/v1/vehicles/v1/approve"
    assert app.url_path_for(
        "decide_document_api", vehicle_id="v1", document_type="mot_certificate"
    ) == "/api/v1/vehicles/v1/documents/mot_certificate/status"
