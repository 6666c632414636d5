from tripstory.schemas.events import StatusData
from tripstory.schemas.status import ProcessingStatus
from tripstory.utils.exceptions import mask_secrets
from tripstory.utils.response import success_response, error_response


def test_success_response_with_data():
    result = success_response(data={"key": "value"})
    assert result == {"status": "success", "data": {"key": "value"}, "message": None}


def test_success_response_with_message():
    result = success_response(data=None, message="Processing cancelled")
    assert result == {"status": "success", "data": None, "message": "Processing cancelled"}


def test_error_response():
    result = error_response("Trip not found")
    assert result == {"status": "error", "data": None, "message": "Trip not found"}


def test_error_response_with_data():
    result = error_response("Invalid trip", data={"field": "name"})
    assert result == {"status": "error", "data": {"field": "name"}, "message": "Invalid trip"}


def test_mask_secrets():
    assert mask_secrets("Incorrect API key provided: sk-proj-Ab12_cd") == "Incorrect API key provided: sk-***"
    assert mask_secrets("nothing to hide") == "nothing to hide"


def test_success_response_dumps_models():
    result = success_response(data={"items": [StatusData(status=ProcessingStatus.COMPLETED)]})
    assert result["data"] == {"items": [{"status": "completed", "message": None}]}
