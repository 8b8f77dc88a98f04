import pytest
from pydantic import ValidationError as PydanticValidationError

from partlookup.config import HealthResponse, LookupResponse, ResolutionResult, VendorResults
from partlookup.errors import ValidationError
from partlookup.vendors import DEFAULT_VENDORS, VendorConfig, VendorTable


def result(part="12345"):
    return ResolutionResult(
        vendor="graybar",
        vendorDisplayName="Graybar",
        description="12 AWG THHN Copper Wire",
        partNumber=part,
        explanation="",
    )


def test_resolution_result_serializes_contract_field_names():
    assert set(result().model_dump()) == {"vendor", "vendorDisplayName", "description", "partNumber", "explanation"}


def test_part_number_is_never_empty():
    with pytest.raises(PydanticValidationError):
        result(part="")
    assert result().resolved
    assert not result(part="N/A").resolved


def test_lookup_response_structure():
    resp = LookupResponse(vendors=[VendorResults(vendor="graybar", vendorDisplayName="Graybar", partNumbers=[result()])])
    assert resp.model_dump()["vendors"][0]["partNumbers"][0]["partNumber"] == "12345"


def test_health_response():
    assert HealthResponse(status="healthy").status == "healthy"


def test_vendor_lookup_is_case_insensitive():
    table = VendorTable()
    assert table.get(" Graybar ").key == "graybar"
    assert table.select() == DEFAULT_VENDORS
    assert [v.key for v in table.select("PLATT")] == ["platt"]


def test_unknown_vendor_is_a_validation_error():
    with pytest.raises(ValidationError):
        VendorTable().get("acme")


def test_duplicate_vendor_keys_are_rejected():
    v = VendorConfig(key="x", display_name="X", search_namespace="x")
    with pytest.raises(ValueError):
        VendorTable([v, VendorConfig(key="X", display_name="X2", search_namespace="x2")])


def test_realtime_weight_bounds():
    with pytest.raises(ValueError):
        VendorConfig(key="x", display_name="X", search_namespace="x", realtime_weight=1.5)


def test_feedback_namespace_defaults_to_corrections_suffix():
    v = VendorConfig(key="x", display_name="X", search_namespace="x-catalog")
    assert v.feedback_namespace == "x-catalog-corrections"
    assert VendorConfig(key="y", display_name="Y", search_namespace="y", corrections_namespace="fb").feedback_namespace == "fb"


def test_realtime_needs_weight_and_search_page():
    table = VendorTable()
    assert table.get("graybar").realtime_enabled
    assert not table.get("wesco").realtime_enabled
    assert not VendorConfig(key="z", display_name="Z", search_namespace="z", realtime_weight=0.5).realtime_enabled
