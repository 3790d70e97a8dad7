import pytest

from smartsteps.core.exceptions import ValidationError
from smartsteps.forms.service import parse_form_key


def test_key_normalises_type_and_ignores_provider_for_client_forms():
    key = parse_form_key({"type": "parent_training_sign_in", "client_id": "4", "month": "2", "year": 2025, "provider_id": 9})
    assert key.form_type == "PARENT_TRAINING_SIGN_IN"
    assert key.client_id == 4
    assert key.provider_id is None


def test_visit_attestation_needs_provider():
    with pytest.raises(ValidationError):
        parse_form_key({"type": "VISIT_ATTESTATION", "client_id": 1, "month": 1, "year": 2025})
    key = parse_form_key({"form_type": "VISIT_ATTESTATION", "client_id": 1, "provider_id": "3", "month": 1, "year": 2025})
    assert key.provider_id == 3


@pytest.mark.parametrize(
    "values",
    [
        {"type": "UNKNOWN", "client_id": 1, "month": 1, "year": 2025},
        {"type": "PARENT_ABC_DATA", "month": 1, "year": 2025},
        {"type": "PARENT_ABC_DATA", "client_id": 1, "month": 13, "year": 2025},
        {"type": "PARENT_ABC_DATA", "client_id": 1, "month": 1, "year": 1999},
    ],
)
def test_invalid_keys(values):
    with pytest.raises(ValidationError):
        parse_form_key(values)
